"""
locator.py - Find every bubble instantiation in a flow script.

Recognized shapes of a constructor expression ``new X(args)`` (optionally
awaited, optionally chained with ``.action()``):

    const name = <ctor>;        named binding, id from the scope manager
    <ctor>;                     anonymous, negative synthetic id
    (args) => <ctor>            anonymous, negative synthetic id
    return <ctor>;              anonymous, negative synthetic id

Only classes present in the bubble registry are recognized; anything else is
ordinary code at this layer.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Set

import tree_sitter as ts

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.config.runtime_config import get_variable_line_tolerance

from .comments import extract_comment_for_line
from .exceptions import BubbleExtractionError
from .flow_class import find_flow_class, instance_methods
from .parameters import extract_base_variable_name, extract_parameters
from .scope import IdGenerator, ScopeManager
from .source import SourceText, start_line, end_line, unwrap_parens
from .types import (
    BubbleNodeType,
    BubbleParameter,
    BubbleParameterType,
    InstanceMethodLocation,
    ParsedBubble,
)

logger = logging.getLogger(__name__)

ACTION_METHOD = "action"


def unwrap_constructor(expr: Optional[ts.Node]) -> Optional[ts.Node]:
    """The ``new_expression`` inside ``await``/``.action()`` wrapping, if any."""
    expr = unwrap_parens(expr)
    if expr is None:
        return None
    if expr.type == "await_expression":
        inner = expr.named_children[0] if expr.named_children else None
        return unwrap_constructor(inner)
    if expr.type == "call_expression":
        callee = unwrap_parens(expr.child_by_field_name("function"))
        if callee is not None and callee.type == "member_expression":
            return unwrap_constructor(callee.child_by_field_name("object"))
        return None
    if expr.type == "new_expression":
        return expr
    return None


class BubbleLocator:
    """Walks a tree once and collects ParsedBubble records keyed by variable id."""

    def __init__(
        self,
        tree: ts.Tree,
        source: SourceText,
        scopes: ScopeManager,
        registry: BubbleRegistry,
    ):
        self.tree = tree
        self.source = source
        self.scopes = scopes
        self.registry = registry
        self._anonymous_ids = IdGenerator()
        self._bubbles: Dict[int, ParsedBubble] = OrderedDict()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def locate(self) -> Dict[int, ParsedBubble]:
        if self.registry.is_empty():
            raise BubbleExtractionError("Bubble registry is empty; cannot locate bubbles")
        self._bubbles = OrderedDict()
        self._anonymous_ids = IdGenerator()
        self._visit(self.tree.root_node)
        logger.debug("Located %d bubbles", len(self._bubbles))
        return self._bubbles

    def instance_method_locations(self) -> Dict[str, InstanceMethodLocation]:
        """Locations and invocation lines of the flow class's instance methods."""
        flow_class = find_flow_class(self.tree.root_node, self.source)
        if flow_class is None:
            return {}
        methods = instance_methods(flow_class, self.source)
        invocations: Dict[str, Set[int]] = {name: set() for name in methods}
        self._collect_invocations(self.tree.root_node, invocations)

        locations: Dict[str, InstanceMethodLocation] = OrderedDict()
        for name, method in methods.items():
            body = method.child_by_field_name("body")
            name_node = method.child_by_field_name("name")
            definition_start = start_line(name_node) if name_node is not None else start_line(method)
            locations[name] = InstanceMethodLocation(
                start_line=start_line(method),
                end_line=end_line(method),
                definition_start_line=definition_start,
                body_start_line=start_line(body) if body is not None else definition_start,
                invocation_lines=sorted(invocations[name]),
            )
        return locations

    def _collect_invocations(self, node: ts.Node, invocations: Dict[str, Set[int]]) -> None:
        if node.type == "call_expression":
            callee = node.child_by_field_name("function")
            if callee is not None and callee.type == "member_expression":
                obj = callee.child_by_field_name("object")
                prop = callee.child_by_field_name("property")
                if obj is not None and obj.type == "this" and prop is not None:
                    name = self.source.node_text(prop)
                    if name in invocations:
                        invocations[name].add(start_line(node))
        for child in node.named_children:
            self._collect_invocations(child, invocations)

    # -------------------------------------------------------------------------
    # Walk
    # -------------------------------------------------------------------------

    def _visit(self, node: ts.Node) -> None:
        kind = node.type
        if kind in ("lexical_declaration", "variable_declaration"):
            self._visit_declaration(node)
        elif kind == "expression_statement":
            expr = node.named_children[0] if node.named_children else None
            self._record_anonymous(expr, node, with_description=True)
        elif kind == "arrow_function":
            body = node.child_by_field_name("body")
            if body is not None and body.type != "statement_block":
                self._record_anonymous(body, node, with_description=False)
        elif kind == "return_statement":
            expr = node.named_children[0] if node.named_children else None
            self._record_anonymous(expr, node, with_description=True)

        for child in node.named_children:
            self._visit(child)

    def _visit_declaration(self, statement: ts.Node) -> None:
        for declarator in statement.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            if name_node is None or value is None or name_node.type != "identifier":
                continue
            bubble = self._extract(value)
            if bubble is None:
                continue
            name = self.source.node_text(name_node)
            line = start_line(statement)
            variable = self.scopes.find_declared_near(name, line, get_variable_line_tolerance())
            if variable is None:
                raise BubbleExtractionError(f"Variable {name} not found in scope manager")
            bubble.variable_name = name
            bubble.variable_id = variable.id
            bubble.description = extract_comment_for_line(self.source.lines, line)
            bubble.parameters = self._resolve_parameter_variables(bubble.parameters, line)
            self._bubbles[variable.id] = bubble

    def _record_anonymous(
        self, expr: Optional[ts.Node], context: ts.Node, with_description: bool
    ) -> None:
        if expr is None:
            return
        bubble = self._extract(expr)
        if bubble is None:
            return
        line = start_line(context)
        bubble.variable_name = f"_anonymous_{bubble.class_name}_{len(self._bubbles)}"
        bubble.variable_id = -self._anonymous_ids.next_id()
        if with_description:
            bubble.description = extract_comment_for_line(self.source.lines, line)
        bubble.parameters = self._resolve_parameter_variables(bubble.parameters, line)
        self._bubbles[bubble.variable_id] = bubble

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    def _extract(self, expr: ts.Node) -> Optional[ParsedBubble]:
        expr = unwrap_parens(expr)
        if expr is None:
            return None
        if expr.type == "await_expression":
            inner = expr.named_children[0] if expr.named_children else None
            bubble = self._extract(inner) if inner is not None else None
            if bubble is not None:
                bubble.has_await = True
            return bubble
        if expr.type == "new_expression":
            return self._from_new_expression(expr)
        if expr.type == "call_expression":
            callee = unwrap_parens(expr.child_by_field_name("function"))
            if callee is None or callee.type != "member_expression":
                return None
            prop = callee.child_by_field_name("property")
            obj = unwrap_parens(callee.child_by_field_name("object"))
            if (
                prop is not None
                and self.source.node_text(prop) == ACTION_METHOD
                and obj is not None
                and obj.type == "new_expression"
            ):
                bubble = self._from_new_expression(obj)
                if bubble is not None:
                    bubble.has_action_call = True
                return bubble
        return None

    def _from_new_expression(self, new_expr: ts.Node) -> Optional[ParsedBubble]:
        constructor = new_expr.child_by_field_name("constructor")
        if constructor is None or constructor.type != "identifier":
            return None
        definition = self.registry.by_class_name(self.source.node_text(constructor))
        if definition is None:
            return None

        arguments = new_expr.child_by_field_name("arguments")
        first_arg = None
        if arguments is not None:
            args = [a for a in arguments.named_children if a.type != "comment"]
            first_arg = args[0] if args else None

        return ParsedBubble(
            variable_id=0,
            variable_name="",
            bubble_name=definition.name,
            class_name=definition.class_name,
            parameters=extract_parameters(first_arg, self.source),
            location=self.source.location(new_expr),
            node_type=BubbleNodeType.parse(definition.node_type),
        )

    def _resolve_parameter_variables(
        self, parameters: List[BubbleParameter], line: int
    ) -> List[BubbleParameter]:
        for param in parameters:
            if param.type is not BubbleParameterType.VARIABLE or not isinstance(param.value, str):
                continue
            base = extract_base_variable_name(param.value)
            if base is None:
                continue
            param.variable_id = self.scopes.resolve_variable(base, line)
        return parameters


def locate_bubbles(
    tree: ts.Tree, source: SourceText, scopes: ScopeManager, registry: BubbleRegistry
) -> Dict[int, ParsedBubble]:
    """Locate every registered bubble instantiation in a parsed script."""
    return BubbleLocator(tree, source, scopes, registry).locate()
