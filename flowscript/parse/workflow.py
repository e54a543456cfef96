"""
workflow.py - Build the workflow tree of a flow's handle method.

Every top-level statement of ``handle`` produces exactly one WorkflowNode:

    if / else if / else     -> if (else-if nested as a single if in else_branch)
    for, for-in, for-of     -> for
    while, do-while         -> while
    try / catch             -> try_catch
    const x = new XBubble() -> bubble leaf
    this.step(...)          -> function_call (expanded) or transformation_function
    Promise.all([...])      -> parallel_execution
    anything else           -> code_block, with any nested bubbles as children

Method and module-function calls are expanded into their bodies the first
time they are reached, so a bubble inside a helper called from several
places still appears exactly once in the tree.

Usage:
    from flowscript.parse.workflow import WorkflowBuilder

    workflow = WorkflowBuilder(tree, source, bubbles, scopes).build()
    assert set(workflow.bubble_ids()) == set(bubbles)
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

import tree_sitter as ts

from flowscript.config.runtime_config import get_column_tolerance

from .comments import extract_comment_for_line
from .flow_class import HANDLE_METHOD, find_flow_class, find_handle_function, instance_methods, module_functions
from .locator import unwrap_constructor
from .scope import ScopeManager
from .source import (
    FUNCTION_NODE_TYPES,
    SourceText,
    end_line,
    function_parameters,
    has_token,
    pattern_names,
    start_line,
    statements_of,
    unwrap_parens,
)
from .types import (
    BubbleWorkflowNode,
    CallVariableDeclaration,
    CodeBlockWorkflowNode,
    ForWorkflowNode,
    FunctionCallWorkflowNode,
    IfWorkflowNode,
    LineSpan,
    MethodDefinition,
    ParallelExecutionWorkflowNode,
    ParallelVariableDeclaration,
    ParsedBubble,
    ParsedWorkflow,
    TransformationFunctionWorkflowNode,
    TryCatchWorkflowNode,
    WhileWorkflowNode,
    WorkflowNode,
    iter_workflow_nodes,
)

logger = logging.getLogger(__name__)

_DECLARATION_TYPES = ("lexical_declaration", "variable_declaration")
_TERMINATING_TYPES = ("return_statement", "throw_statement")
_SIGNIFICANT_TYPES = ("bubble", "function_call", "transformation_function", "parallel_execution")
_PARALLEL_METHODS = ("all", "allSettled")

# (name, definition node, is_method_call, call_expression node)
CallTarget = Tuple[str, ts.Node, bool, ts.Node]


def _declaration_kind(statement: ts.Node) -> str:
    if statement.type == "variable_declaration":
        return "var"
    for child in statement.children:
        if child.type in ("const", "let", "var"):
            return child.type
    return "const"


def _branch_statements(statement: Optional[ts.Node]) -> List[ts.Node]:
    if statement is None:
        return []
    if statement.type == "statement_block":
        return statements_of(statement)
    return [statement]


def _terminates(statements: List[ts.Node]) -> bool:
    return any(s.type in _TERMINATING_TYPES for s in statements)


def _is_significant(node: WorkflowNode) -> bool:
    return any(n.type in _SIGNIFICANT_TYPES for n in iter_workflow_nodes([node]))


class WorkflowBuilder:
    """Converts the handle method of one parse into a ParsedWorkflow."""

    def __init__(
        self,
        tree: ts.Tree,
        source: SourceText,
        bubbles: Dict[int, ParsedBubble],
        scopes: Optional[ScopeManager] = None,
    ):
        self.tree = tree
        self.source = source
        self.bubbles = bubbles
        self.scopes = scopes
        self.column_tolerance = get_column_tolerance()

        root = tree.root_node
        flow_class = find_flow_class(root, source)
        self._methods = instance_methods(flow_class, source) if flow_class is not None else {}
        self._functions = module_functions(root, source)
        self._expanded: Set[Tuple[bool, str]] = set()
        self._call_stack: List[Tuple[bool, str]] = []
        self._bubble_memo: Dict[Tuple[int, int], bool] = {}

    def build(self) -> ParsedWorkflow:
        handle = find_handle_function(self.tree.root_node, self.source)
        if handle is None:
            logger.debug("No handle method; workflow is empty")
            return ParsedWorkflow(root=[], bubbles=self.bubbles)
        body = handle.child_by_field_name("body")
        if body is None or body.type != "statement_block":
            return ParsedWorkflow(root=[], bubbles=self.bubbles)

        self._expanded = set()
        self._call_stack = [(handle.type == "method_definition", HANDLE_METHOD)]
        root = [self._build_statement(stmt) for stmt in statements_of(body)]
        logger.debug("Built workflow with %d top-level nodes", len(root))
        return ParsedWorkflow(root=root, bubbles=self.bubbles)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _build_statements(self, statement: Optional[ts.Node]) -> List[WorkflowNode]:
        return [self._build_statement(s) for s in _branch_statements(statement)]

    def _build_statement(self, statement: ts.Node) -> WorkflowNode:
        kind = statement.type
        if kind == "if_statement":
            return self._build_if(statement)
        if kind in ("for_statement", "for_in_statement"):
            return self._build_for(statement)
        if kind in ("while_statement", "do_statement"):
            return self._build_while(statement)
        if kind == "try_statement":
            return self._build_try(statement)
        if kind in _DECLARATION_TYPES:
            return self._build_declaration(statement)
        if kind == "expression_statement":
            return self._build_expression_statement(statement)
        if kind == "return_statement":
            argument = statement.named_children[0] if statement.named_children else None
            if argument is not None:
                node = self._build_value(argument, statement, None)
                if node is not None:
                    return node
            return self._code_block(statement)
        if kind == "statement_block":
            return CodeBlockWorkflowNode(
                location=self.source.location(statement),
                code=self.source.node_text(statement),
                children=self._build_statements(statement),
            )
        return self._code_block(statement)

    def _condition_text(self, node: Optional[ts.Node]) -> str:
        if node is None:
            return ""
        if node.type == "parenthesized_expression" and node.named_children:
            node = node.named_children[0]
        return self.source.node_text(node)

    def _build_if(self, statement: ts.Node) -> IfWorkflowNode:
        condition = statement.child_by_field_name("condition")
        consequence = statement.child_by_field_name("consequence")
        alternative = statement.child_by_field_name("alternative")

        # Calls in the condition run before either branch
        children = self._collect_from(condition)
        children.extend(self._build_statements(consequence))

        else_branch = None
        else_terminates = False
        if alternative is not None:
            branch = alternative
            if alternative.type == "else_clause":
                inner = [c for c in alternative.named_children if c.type != "comment"]
                branch = inner[0] if inner else None
            if branch is not None and branch.type == "if_statement":
                else_branch = [self._build_if(branch)]
            else:
                else_branch = self._build_statements(branch)
                else_terminates = _terminates(_branch_statements(branch))

        return IfWorkflowNode(
            location=self.source.location(statement),
            condition=self._condition_text(condition),
            children=children,
            else_branch=else_branch,
            then_terminates=_terminates(_branch_statements(consequence)),
            else_terminates=else_terminates,
        )

    def _collect_from(self, *nodes: Optional[ts.Node]) -> List[WorkflowNode]:
        """Bubbles and calls inside loop headers and conditions, in source order."""
        found: List[WorkflowNode] = []
        for node in nodes:
            if node is not None:
                self._collect_into(node, found)
        return found

    def _for_condition(self, statement: ts.Node) -> str:
        if statement.type == "for_in_statement":
            kind = statement.child_by_field_name("kind")
            left = self.source.node_text(statement.child_by_field_name("left"))
            if kind is not None:
                left = f"{self.source.node_text(kind)} {left}"
            operator = "of" if has_token(statement, "of") else "in"
            right = self.source.node_text(statement.child_by_field_name("right"))
            return f"{left} {operator} {right}"

        parts = []
        for field_name in ("initializer", "condition", "increment"):
            part = self.source.node_text(statement.child_by_field_name(field_name))
            parts.append(part.strip().rstrip(";").strip())
        return "; ".join(parts).strip()

    def _build_for(self, statement: ts.Node) -> ForWorkflowNode:
        if statement.type == "for_in_statement":
            children = self._collect_from(statement.child_by_field_name("right"))
        else:
            children = self._collect_from(
                statement.child_by_field_name("initializer"),
                statement.child_by_field_name("condition"),
                statement.child_by_field_name("increment"),
            )
        children.extend(self._build_statements(statement.child_by_field_name("body")))
        return ForWorkflowNode(
            location=self.source.location(statement),
            condition=self._for_condition(statement),
            children=children,
        )

    def _build_while(self, statement: ts.Node) -> WhileWorkflowNode:
        condition = statement.child_by_field_name("condition")
        body = self._build_statements(statement.child_by_field_name("body"))
        # do-while evaluates its condition after the body
        if statement.type == "do_statement":
            children = body + self._collect_from(condition)
        else:
            children = self._collect_from(condition) + body
        return WhileWorkflowNode(
            location=self.source.location(statement),
            condition=self._condition_text(condition),
            children=children,
        )

    def _build_try(self, statement: ts.Node) -> TryCatchWorkflowNode:
        children = self._build_statements(statement.child_by_field_name("body"))
        finalizer = statement.child_by_field_name("finalizer")
        if finalizer is not None:
            children.extend(self._build_statements(finalizer.child_by_field_name("body")))

        handler = statement.child_by_field_name("handler")
        catch_block = None
        if handler is not None:
            catch_block = self._build_statements(handler.child_by_field_name("body"))
        return TryCatchWorkflowNode(
            location=self.source.location(statement),
            children=children,
            catch_block=catch_block,
        )

    def _build_declaration(self, statement: ts.Node) -> WorkflowNode:
        declarators = [d for d in statement.named_children if d.type == "variable_declarator"]
        leaves: List[WorkflowNode] = []
        for declarator in declarators:
            name = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            if value is None:
                continue
            bubble = self._match_expression(value)
            if bubble is None and name is not None and name.type == "identifier":
                bubble = self._bubble_by_name(self.source.node_text(name), declarator)
            if bubble is not None:
                leaves.append(BubbleWorkflowNode(variable_id=bubble.variable_id))
            elif len(declarators) > 1:
                leaves.extend(self._collect_nested(value))
        if len(leaves) == 1 and len(declarators) == 1:
            return leaves[0]
        if leaves:
            # Several declarators: one code block holding every bubble
            return CodeBlockWorkflowNode(
                location=self.source.location(statement),
                code=self.source.node_text(statement),
                children=leaves,
            )

        if len(declarators) == 1:
            name = declarators[0].child_by_field_name("name")
            value = declarators[0].child_by_field_name("value")
            if name is not None and value is not None:
                kind = _declaration_kind(statement)
                parallel = self._build_parallel(value, statement, self._parallel_names(name, kind))
                if parallel is not None:
                    return parallel
                declaration = CallVariableDeclaration(self.source.node_text(name), kind)
                call = self._build_call(value, statement, declaration)
                if call is not None:
                    return call
        return self._code_block(statement)

    def _build_expression_statement(self, statement: ts.Node) -> WorkflowNode:
        expr = statement.named_children[0] if statement.named_children else None
        if expr is None:
            return self._code_block(statement)
        if expr.type == "assignment_expression":
            left = expr.child_by_field_name("left")
            right = expr.child_by_field_name("right")
            if left is not None and right is not None:
                bubble = self._match_expression(right)
                if bubble is not None:
                    return BubbleWorkflowNode(variable_id=bubble.variable_id)
                kind = self._assigned_kind(left, statement)
                parallel = self._build_parallel(right, statement, self._parallel_names(left, kind))
                if parallel is not None:
                    return parallel
                declaration = CallVariableDeclaration(self.source.node_text(left), kind)
                call = self._build_call(right, statement, declaration)
                if call is not None:
                    return call
            return self._code_block(statement)

        node = self._build_value(expr, statement, None)
        return node if node is not None else self._code_block(statement)

    def _build_value(
        self,
        expr: ts.Node,
        statement: ts.Node,
        declaration: Optional[CallVariableDeclaration],
    ) -> Optional[WorkflowNode]:
        """Bubble, parallel or call node for an expression, or None."""
        bubble = self._match_expression(expr)
        if bubble is not None:
            return BubbleWorkflowNode(variable_id=bubble.variable_id)
        parallel = self._build_parallel(expr, statement, None)
        if parallel is not None:
            return parallel
        return self._build_call(expr, statement, declaration)

    def _code_block(self, statement: ts.Node) -> CodeBlockWorkflowNode:
        return CodeBlockWorkflowNode(
            location=self.source.location(statement),
            code=self.source.node_text(statement),
            children=self._collect_nested(statement),
        )

    # -------------------------------------------------------------------------
    # Bubble matching
    # -------------------------------------------------------------------------

    def _match_expression(self, expr: ts.Node) -> Optional[ParsedBubble]:
        new_expr = unwrap_constructor(expr)
        if new_expr is None:
            return None
        return self._match_new_expression(new_expr)

    def _match_new_expression(self, new_expr: ts.Node) -> Optional[ParsedBubble]:
        location = self.source.location(new_expr)
        for bubble in self.bubbles.values():
            if (
                bubble.location.start_line == location.start_line
                and bubble.location.end_line == location.end_line
                and abs(bubble.location.start_col - location.start_col) <= self.column_tolerance
            ):
                return bubble
        return None

    def _bubble_by_name(self, name: str, statement: ts.Node) -> Optional[ParsedBubble]:
        span = self.source.location(statement)
        for bubble in self.bubbles.values():
            if (
                bubble.variable_name == name
                and span.start_line <= bubble.location.start_line
                and bubble.location.end_line <= span.end_line
            ):
                return bubble
        return None

    # -------------------------------------------------------------------------
    # Nested collection
    # -------------------------------------------------------------------------

    def _collect_nested(self, node: ts.Node) -> List[WorkflowNode]:
        """Bubbles and calls found anywhere inside an opaque statement."""
        found: List[WorkflowNode] = []
        self._collect_into(node, found)
        return found

    def _collect_into(self, node: ts.Node, found: List[WorkflowNode]) -> None:
        kind = node.type
        if kind in FUNCTION_NODE_TYPES:
            body = node.child_by_field_name("body")
            if body is None:
                return
            if body.type == "statement_block":
                for statement in statements_of(body):
                    built = self._build_statement(statement)
                    if _is_significant(built):
                        found.append(built)
            else:
                self._collect_into(body, found)
            return

        if kind == "new_expression":
            bubble = self._match_new_expression(node)
            if bubble is not None:
                found.append(BubbleWorkflowNode(variable_id=bubble.variable_id))
                return

        if kind == "call_expression":
            call = self._build_call(node, node, None)
            if call is not None:
                found.append(call)
                arguments = node.child_by_field_name("arguments")
                if arguments is not None:
                    self._collect_into(arguments, found)
                return

        for child in node.named_children:
            self._collect_into(child, found)

    # -------------------------------------------------------------------------
    # Promise.all
    # -------------------------------------------------------------------------

    def _parallel_names(self, target: ts.Node, kind: str) -> Optional[ParallelVariableDeclaration]:
        if target.type == "array_pattern":
            names = [name for name, _ in pattern_names(target, self.source)]
        else:
            names = [self.source.node_text(target)]
        return ParallelVariableDeclaration(variable_names=names, variable_type=kind)

    def _promise_all(self, expr: ts.Node) -> Optional[ts.Node]:
        expr = unwrap_parens(expr)
        if expr is not None and expr.type == "await_expression" and expr.named_children:
            expr = unwrap_parens(expr.named_children[0])
        if expr is None or expr.type != "call_expression":
            return None
        callee = expr.child_by_field_name("function")
        if callee is None or callee.type != "member_expression":
            return None
        obj = callee.child_by_field_name("object")
        prop = callee.child_by_field_name("property")
        if self.source.node_text(obj) == "Promise" and self.source.node_text(prop) in _PARALLEL_METHODS:
            return expr
        return None

    def _build_parallel(
        self,
        expr: ts.Node,
        statement: ts.Node,
        declaration: Optional[ParallelVariableDeclaration],
    ) -> Optional[ParallelExecutionWorkflowNode]:
        call = self._promise_all(expr)
        if call is None:
            return None
        arguments = call.child_by_field_name("arguments")
        args = [a for a in arguments.named_children if a.type != "comment"] if arguments is not None else []

        children: List[WorkflowNode] = []
        if args and args[0].type == "array":
            for element in args[0].named_children:
                if element.type == "comment":
                    continue
                task = self._build_value(element, element, None)
                if task is not None:
                    children.append(task)
                else:
                    children.extend(self._collect_nested(element))
        elif args:
            children = self._collect_nested(args[0])

        return ParallelExecutionWorkflowNode(
            location=self.source.location(statement),
            code=self.source.node_text(statement),
            variable_declaration=declaration,
            children=children,
        )

    # -------------------------------------------------------------------------
    # Method and function calls
    # -------------------------------------------------------------------------

    def _assigned_kind(self, target: ts.Node, statement: ts.Node) -> str:
        names = pattern_names(target, self.source) if target.type != "identifier" else [
            (self.source.node_text(target), target)
        ]
        if not names or self.scopes is None:
            return "let"
        variable_id = self.scopes.resolve_variable(names[0][0], start_line(statement))
        variable = self.scopes.get_variable(variable_id) if variable_id is not None else None
        return variable.kind if variable is not None else "let"

    def _call_target(self, expr: ts.Node) -> Optional[CallTarget]:
        expr = unwrap_parens(expr)
        if expr is not None and expr.type == "await_expression" and expr.named_children:
            expr = unwrap_parens(expr.named_children[0])
        if expr is None or expr.type != "call_expression":
            return None
        callee = unwrap_parens(expr.child_by_field_name("function"))
        if callee is None:
            return None
        if callee.type == "member_expression":
            obj = callee.child_by_field_name("object")
            prop = callee.child_by_field_name("property")
            if obj is None or obj.type != "this" or prop is None:
                return None
            name = self.source.node_text(prop)
            definition = self._methods.get(name)
            return (name, definition, True, expr) if definition is not None else None
        if callee.type == "identifier":
            name = self.source.node_text(callee)
            definition = self._functions.get(name)
            return (name, definition, False, expr) if definition is not None else None
        return None

    def _definition_anchor_line(self, definition: ts.Node) -> int:
        """First line of the statement that declares a function or method."""
        node = definition
        while node.parent is not None and node.parent.type in (
            "variable_declarator",
            "lexical_declaration",
            "variable_declaration",
            "export_statement",
        ):
            node = node.parent
        return start_line(node)

    def _method_definition(self, definition: ts.Node) -> MethodDefinition:
        return MethodDefinition(
            location=LineSpan(start_line(definition), end_line(definition)),
            is_async=has_token(definition, "async"),
            parameters=[self.source.node_text(p) for p in function_parameters(definition)],
        )

    def _contains_bubbles(self, definition: ts.Node, visiting: Optional[Set[Tuple[int, int]]] = None) -> bool:
        """True when a function's body, or anything it calls, instantiates a bubble."""
        key = (definition.start_byte, definition.end_byte)
        if key in self._bubble_memo:
            return self._bubble_memo[key]
        visiting = visiting if visiting is not None else set()
        if key in visiting:
            return False
        visiting.add(key)

        first, last = start_line(definition), end_line(definition)
        result = any(first <= b.location.start_line <= last for b in self.bubbles.values())
        if not result:
            result = any(
                self._contains_bubbles(target[1], visiting)
                for target in self._calls_within(definition)
            )
        visiting.discard(key)
        self._bubble_memo[key] = result
        return result

    def _calls_within(self, node: ts.Node) -> List[CallTarget]:
        targets: List[CallTarget] = []
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type == "call_expression":
                target = self._call_target(current)
                if target is not None:
                    targets.append(target)
            stack.extend(current.named_children)
        return targets

    def _expand(self, definition: ts.Node) -> List[WorkflowNode]:
        body = definition.child_by_field_name("body")
        if body is None:
            return []
        if body.type == "statement_block":
            return [self._build_statement(s) for s in statements_of(body)]
        node = self._build_value(body, body, None)
        return [node] if node is not None else [self._code_block(body)]

    def _build_call(
        self,
        expr: ts.Node,
        statement: ts.Node,
        declaration: Optional[CallVariableDeclaration],
    ) -> Optional[TransformationFunctionWorkflowNode]:
        target = self._call_target(expr)
        if target is None:
            return None
        name, definition, is_method, call = target

        arguments_node = call.child_by_field_name("arguments")
        arguments = None
        if arguments_node is not None:
            arguments = self.source.node_text(arguments_node).strip()
            if arguments.startswith("(") and arguments.endswith(")"):
                arguments = arguments[1:-1].strip()

        description = extract_comment_for_line(self.source.lines, start_line(statement))
        if description is None:
            description = extract_comment_for_line(self.source.lines, self._definition_anchor_line(definition))

        fields = dict(
            location=self.source.location(statement),
            code=self.source.node_text(statement),
            function_name=name,
            is_method_call=is_method,
            description=description,
            arguments=arguments,
            variable_declaration=declaration,
            method_definition=self._method_definition(definition),
        )
        if not self._contains_bubbles(definition):
            return TransformationFunctionWorkflowNode(**fields)

        key = (is_method, name)
        children: List[WorkflowNode] = []
        if key not in self._expanded and key not in self._call_stack:
            self._expanded.add(key)
            self._call_stack.append(key)
            try:
                children = self._expand(definition)
            finally:
                self._call_stack.pop()
        return FunctionCallWorkflowNode(children=children, **fields)


def build_workflow(
    tree: ts.Tree,
    source: SourceText,
    bubbles: Dict[int, ParsedBubble],
    scopes: Optional[ScopeManager] = None,
) -> ParsedWorkflow:
    """Build the workflow tree for a parsed script."""
    return WorkflowBuilder(tree, source, bubbles, scopes).build()
