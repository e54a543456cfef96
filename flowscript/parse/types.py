"""
types.py - Dataclasses for parsed flow scripts.

These types are the analysis result handed to the execution and UI layers:
located bubbles with their parameters and dependency graphs, the workflow
tree of the handle method, and the trigger declaration.

Every type serializes to the camelCase wire shape with ``to_dict()``; the
``*_from_dict`` helpers rebuild them from that shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union


class BubbleParameterType(Enum):
    """Classification tag for a bubble constructor parameter."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ENV = "env"
    VARIABLE = "variable"
    EXPRESSION = "expression"
    UNKNOWN = "unknown"


class BubbleNodeType(Enum):
    """Kind of bubble as declared by the capability registry."""
    SERVICE = "service"
    TOOL = "tool"
    WORKFLOW = "workflow"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "BubbleNodeType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ParameterSource(Enum):
    """How a parameter value reached the bubble constructor."""
    OBJECT_PROPERTY = "object-property"
    FIRST_ARG = "first-arg"
    SPREAD = "spread"


# =============================================================================
# Locations
# =============================================================================


@dataclass(frozen=True)
class Location:
    """Source span. Lines are 1-based, columns are 0-based characters."""
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def to_dict(self) -> Dict[str, int]:
        return {
            "startLine": self.start_line,
            "startCol": self.start_col,
            "endLine": self.end_line,
            "endCol": self.end_col,
        }


def location_from_dict(data: Dict[str, Any]) -> Location:
    return Location(
        start_line=data["startLine"],
        start_col=data.get("startCol", 0),
        end_line=data["endLine"],
        end_col=data.get("endCol", 0),
    )


@dataclass(frozen=True)
class LineSpan:
    """Line-only span, used for method definitions."""
    start_line: int
    end_line: int

    def to_dict(self) -> Dict[str, int]:
        return {"startLine": self.start_line, "endLine": self.end_line}


# =============================================================================
# Bubbles
# =============================================================================


@dataclass
class BubbleParameter:
    """One constructor-argument property of a bubble instantiation.

    Attributes:
        name: Property name, spread identifier, or first-arg identifier
        value: Literal value for strings, source text otherwise
        type: Classification tag
        source: How the value reached the constructor
        location: Exact span of the value expression
        variable_id: Resolved scope variable for variable-typed values
    """
    name: str
    value: Any
    type: BubbleParameterType
    source: ParameterSource = ParameterSource.OBJECT_PROPERTY
    location: Optional[Location] = None
    variable_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "type": self.type.value,
            "source": self.source.value,
        }
        if self.location is not None:
            data["location"] = self.location.to_dict()
        if self.variable_id is not None:
            data["variableId"] = self.variable_id
        return data


def bubble_parameter_from_dict(data: Dict[str, Any]) -> BubbleParameter:
    location = data.get("location")
    return BubbleParameter(
        name=data["name"],
        value=data.get("value"),
        type=BubbleParameterType(data.get("type", "unknown")),
        source=ParameterSource(data.get("source", "object-property")),
        location=location_from_dict(location) if location else None,
        variable_id=data.get("variableId"),
    )


@dataclass
class DependencyGraphNode:
    """One node of a bubble's expanded capability tree."""
    name: str
    unique_id: str
    variable_id: int
    node_type: BubbleNodeType = BubbleNodeType.UNKNOWN
    variable_name: Optional[str] = None
    dependencies: List["DependencyGraphNode"] = field(default_factory=list)

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.dependencies:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "uniqueId": self.unique_id,
            "variableId": self.variable_id,
            "nodeType": self.node_type.value,
            "dependencies": [d.to_dict() for d in self.dependencies],
        }
        if self.variable_name is not None:
            data["variableName"] = self.variable_name
        return data


def dependency_graph_from_dict(data: Dict[str, Any]) -> DependencyGraphNode:
    return DependencyGraphNode(
        name=data["name"],
        unique_id=data["uniqueId"],
        variable_id=data["variableId"],
        node_type=BubbleNodeType.parse(data.get("nodeType")),
        variable_name=data.get("variableName"),
        dependencies=[dependency_graph_from_dict(d) for d in data.get("dependencies", [])],
    )


@dataclass
class ParsedBubble:
    """One instantiation of a registered bubble.

    Attributes:
        variable_id: Scope variable id, or a negative synthetic id for
            anonymous instantiations
        variable_name: Bound name, or ``_anonymous_<Class>_<n>``
        bubble_name: Registry key
        class_name: Constructor identifier in source
        parameters: Extracted constructor parameters in source order
        has_await: The expression was awaited
        has_action_call: The expression chained ``.action()``
        node_type: Registry node type
        location: Span of the ``new`` expression
        description: Text of the comment directly above the statement
        dependencies: Flattened transitive dependency names
        dependency_graph: Hierarchical dependency tree
    """
    variable_id: int
    variable_name: str
    bubble_name: str
    class_name: str
    parameters: List[BubbleParameter]
    location: Location
    has_await: bool = False
    has_action_call: bool = False
    node_type: BubbleNodeType = BubbleNodeType.UNKNOWN
    description: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    dependency_graph: Optional[DependencyGraphNode] = None

    def get_parameter(self, name: str) -> Optional[BubbleParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "variableId": self.variable_id,
            "variableName": self.variable_name,
            "bubbleName": self.bubble_name,
            "className": self.class_name,
            "parameters": [p.to_dict() for p in self.parameters],
            "hasAwait": self.has_await,
            "hasActionCall": self.has_action_call,
            "nodeType": self.node_type.value,
            "location": self.location.to_dict(),
            "dependencies": list(self.dependencies),
        }
        if self.description:
            data["description"] = self.description
        if self.dependency_graph is not None:
            data["dependencyGraph"] = self.dependency_graph.to_dict()
        return data


def parsed_bubble_from_dict(data: Dict[str, Any]) -> ParsedBubble:
    graph = data.get("dependencyGraph")
    return ParsedBubble(
        variable_id=data["variableId"],
        variable_name=data["variableName"],
        bubble_name=data["bubbleName"],
        class_name=data["className"],
        parameters=[bubble_parameter_from_dict(p) for p in data.get("parameters", [])],
        location=location_from_dict(data["location"]),
        has_await=data.get("hasAwait", False),
        has_action_call=data.get("hasActionCall", False),
        node_type=BubbleNodeType.parse(data.get("nodeType")),
        description=data.get("description"),
        dependencies=list(data.get("dependencies", [])),
        dependency_graph=dependency_graph_from_dict(graph) if graph else None,
    )


# =============================================================================
# Workflow nodes
# =============================================================================


@dataclass(frozen=True)
class DeclaredVariable:
    name: str
    type: str  # "const" | "let" | "var"
    has_initializer: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "hasInitializer": self.has_initializer}


@dataclass(frozen=True)
class CallVariableDeclaration:
    """Binding that receives the result of a function call."""
    variable_name: str
    variable_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"variableName": self.variable_name, "variableType": self.variable_type}


@dataclass(frozen=True)
class ParallelVariableDeclaration:
    """Array-destructured bindings receiving ``Promise.all`` results."""
    variable_names: List[str]
    variable_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"variableNames": list(self.variable_names), "variableType": self.variable_type}


@dataclass(frozen=True)
class MethodDefinition:
    location: LineSpan
    is_async: bool
    parameters: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location.to_dict(),
            "isAsync": self.is_async,
            "parameters": list(self.parameters),
        }


@dataclass
class BubbleWorkflowNode:
    type: ClassVar[str] = "bubble"
    variable_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "variableId": self.variable_id}


@dataclass
class IfWorkflowNode:
    type: ClassVar[str] = "if"
    location: Location
    condition: str
    children: List["WorkflowNode"] = field(default_factory=list)
    else_branch: Optional[List["WorkflowNode"]] = None
    then_terminates: bool = False
    else_terminates: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "location": self.location.to_dict(),
            "condition": self.condition,
            "children": [c.to_dict() for c in self.children],
        }
        if self.else_branch is not None:
            data["elseBranch"] = [c.to_dict() for c in self.else_branch]
        if self.then_terminates:
            data["thenTerminates"] = True
        if self.else_terminates:
            data["elseTerminates"] = True
        return data


@dataclass
class ForWorkflowNode:
    type: ClassVar[str] = "for"
    location: Location
    condition: str
    children: List["WorkflowNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "location": self.location.to_dict(),
            "condition": self.condition,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class WhileWorkflowNode(ForWorkflowNode):
    type: ClassVar[str] = "while"


@dataclass
class TryCatchWorkflowNode:
    type: ClassVar[str] = "try_catch"
    location: Location
    children: List["WorkflowNode"] = field(default_factory=list)
    catch_block: Optional[List["WorkflowNode"]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "location": self.location.to_dict(),
            "children": [c.to_dict() for c in self.children],
        }
        if self.catch_block is not None:
            data["catchBlock"] = [c.to_dict() for c in self.catch_block]
        return data


@dataclass
class CodeBlockWorkflowNode:
    type: ClassVar[str] = "code_block"
    location: Location
    code: str
    children: List["WorkflowNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "location": self.location.to_dict(),
            "code": self.code,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class VariableDeclarationWorkflowNode:
    type: ClassVar[str] = "variable_declaration"
    location: Location
    code: str
    variables: List[DeclaredVariable] = field(default_factory=list)
    children: List["WorkflowNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "location": self.location.to_dict(),
            "code": self.code,
            "variables": [v.to_dict() for v in self.variables],
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class ReturnWorkflowNode:
    type: ClassVar[str] = "return"
    location: Location
    code: str
    value: Optional[str] = None
    children: List["WorkflowNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "location": self.location.to_dict(),
            "code": self.code,
            "children": [c.to_dict() for c in self.children],
        }
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass
class TransformationFunctionWorkflowNode:
    """Call of a function whose body instantiates no bubbles."""
    type: ClassVar[str] = "transformation_function"
    location: Location
    code: str
    function_name: str
    is_method_call: bool
    description: Optional[str] = None
    arguments: Optional[str] = None
    variable_declaration: Optional[CallVariableDeclaration] = None
    method_definition: Optional[MethodDefinition] = None

    def _call_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "location": self.location.to_dict(),
            "code": self.code,
            "functionName": self.function_name,
            "isMethodCall": self.is_method_call,
        }
        if self.description:
            data["description"] = self.description
        if self.arguments is not None:
            data["arguments"] = self.arguments
        if self.variable_declaration is not None:
            data["variableDeclaration"] = self.variable_declaration.to_dict()
        if self.method_definition is not None:
            data["methodDefinition"] = self.method_definition.to_dict()
        return data

    def to_dict(self) -> Dict[str, Any]:
        return self._call_dict()


@dataclass
class FunctionCallWorkflowNode(TransformationFunctionWorkflowNode):
    """Call of a method or module function, expanded into its body."""
    type: ClassVar[str] = "function_call"
    children: List["WorkflowNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self._call_dict()
        data["children"] = [c.to_dict() for c in self.children]
        return data


@dataclass
class ParallelExecutionWorkflowNode:
    type: ClassVar[str] = "parallel_execution"
    location: Location
    code: str
    variable_declaration: Optional[ParallelVariableDeclaration] = None
    children: List["WorkflowNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "location": self.location.to_dict(),
            "code": self.code,
            "children": [c.to_dict() for c in self.children],
        }
        if self.variable_declaration is not None:
            data["variableDeclaration"] = self.variable_declaration.to_dict()
        return data


WorkflowNode = Union[
    BubbleWorkflowNode,
    IfWorkflowNode,
    ForWorkflowNode,
    WhileWorkflowNode,
    TryCatchWorkflowNode,
    CodeBlockWorkflowNode,
    VariableDeclarationWorkflowNode,
    ReturnWorkflowNode,
    FunctionCallWorkflowNode,
    ParallelExecutionWorkflowNode,
    TransformationFunctionWorkflowNode,
]


def iter_workflow_nodes(nodes: List[WorkflowNode]):
    """Yield every node of a workflow forest, including else and catch branches."""
    for node in nodes:
        yield node
        yield from iter_workflow_nodes(getattr(node, "children", None) or [])
        yield from iter_workflow_nodes(getattr(node, "else_branch", None) or [])
        yield from iter_workflow_nodes(getattr(node, "catch_block", None) or [])


def collect_bubble_ids(nodes: List[WorkflowNode]) -> List[int]:
    """Variable ids of every bubble leaf, in tree order."""
    return [n.variable_id for n in iter_workflow_nodes(nodes) if isinstance(n, BubbleWorkflowNode)]


def _children_from(data: Dict[str, Any], key: str = "children") -> List[WorkflowNode]:
    return [workflow_node_from_dict(c) for c in data.get(key) or []]


def _call_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    var_decl = data.get("variableDeclaration")
    method = data.get("methodDefinition")
    return dict(
        location=location_from_dict(data["location"]),
        code=data.get("code", ""),
        function_name=data["functionName"],
        is_method_call=data.get("isMethodCall", False),
        description=data.get("description"),
        arguments=data.get("arguments"),
        variable_declaration=CallVariableDeclaration(
            var_decl["variableName"], var_decl["variableType"]
        ) if var_decl else None,
        method_definition=MethodDefinition(
            location=LineSpan(method["location"]["startLine"], method["location"]["endLine"]),
            is_async=method.get("isAsync", False),
            parameters=list(method.get("parameters", [])),
        ) if method else None,
    )


def workflow_node_from_dict(data: Dict[str, Any]) -> WorkflowNode:
    """Rebuild a workflow node from its ``to_dict`` shape."""
    node_type = data.get("type")
    if node_type == "bubble":
        return BubbleWorkflowNode(variable_id=data["variableId"])
    location = location_from_dict(data["location"])
    if node_type == "if":
        else_branch = data.get("elseBranch")
        return IfWorkflowNode(
            location=location,
            condition=data.get("condition", ""),
            children=_children_from(data),
            else_branch=_children_from(data, "elseBranch") if else_branch is not None else None,
            then_terminates=data.get("thenTerminates", False),
            else_terminates=data.get("elseTerminates", False),
        )
    if node_type in ("for", "while"):
        cls = ForWorkflowNode if node_type == "for" else WhileWorkflowNode
        return cls(location=location, condition=data.get("condition", ""), children=_children_from(data))
    if node_type == "try_catch":
        catch_block = data.get("catchBlock")
        return TryCatchWorkflowNode(
            location=location,
            children=_children_from(data),
            catch_block=_children_from(data, "catchBlock") if catch_block is not None else None,
        )
    if node_type == "code_block":
        return CodeBlockWorkflowNode(location=location, code=data.get("code", ""), children=_children_from(data))
    if node_type == "variable_declaration":
        return VariableDeclarationWorkflowNode(
            location=location,
            code=data.get("code", ""),
            variables=[
                DeclaredVariable(v["name"], v["type"], v.get("hasInitializer", False))
                for v in data.get("variables", [])
            ],
            children=_children_from(data),
        )
    if node_type == "return":
        return ReturnWorkflowNode(
            location=location, code=data.get("code", ""), value=data.get("value"), children=_children_from(data)
        )
    if node_type == "function_call":
        return FunctionCallWorkflowNode(children=_children_from(data), **_call_fields(data))
    if node_type == "transformation_function":
        return TransformationFunctionWorkflowNode(**_call_fields(data))
    if node_type == "parallel_execution":
        var_decl = data.get("variableDeclaration")
        return ParallelExecutionWorkflowNode(
            location=location,
            code=data.get("code", ""),
            variable_declaration=ParallelVariableDeclaration(
                list(var_decl["variableNames"]), var_decl["variableType"]
            ) if var_decl else None,
            children=_children_from(data),
        )
    raise ValueError(f"Unknown workflow node type: {node_type!r}")


# =============================================================================
# Parse results
# =============================================================================


@dataclass
class ParsedWorkflow:
    root: List[WorkflowNode]
    bubbles: Dict[int, ParsedBubble]

    def bubble_ids(self) -> List[int]:
        return collect_bubble_ids(self.root)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": [n.to_dict() for n in self.root],
            "bubbles": {str(k): b.to_dict() for k, b in self.bubbles.items()},
        }


def parsed_workflow_from_dict(data: Dict[str, Any]) -> ParsedWorkflow:
    return ParsedWorkflow(
        root=[workflow_node_from_dict(n) for n in data.get("root", [])],
        bubbles={int(k): parsed_bubble_from_dict(b) for k, b in data.get("bubbles", {}).items()},
    )


@dataclass(frozen=True)
class BubbleTrigger:
    type: str
    cron_schedule: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.cron_schedule is not None:
            data["cronSchedule"] = self.cron_schedule
        return data


@dataclass(frozen=True)
class InstanceMethodLocation:
    """Where a flow-class instance method lives and where it is invoked.

    Attributes:
        start_line: First line of the method (including modifiers)
        end_line: Last line of the method
        definition_start_line: Line of the method name
        body_start_line: Line of the opening brace of the body
        invocation_lines: Sorted lines holding ``this.<method>(...)`` calls
    """
    start_line: int
    end_line: int
    definition_start_line: int
    body_start_line: int
    invocation_lines: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "definitionStartLine": self.definition_start_line,
            "bodyStartLine": self.body_start_line,
            "invocationLines": list(self.invocation_lines),
        }
