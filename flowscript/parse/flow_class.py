"""
flow_class.py - Locate the BubbleFlow class and its methods in a tree.
"""

from __future__ import annotations

import re
from typing import Dict, Iterator, List, Optional

import tree_sitter as ts

from .source import SourceText, has_token

FLOW_BASE_CLASS = "BubbleFlow"
HANDLE_METHOD = "handle"

_FLOW_BASE_RE = re.compile(rf"^{FLOW_BASE_CLASS}\b")

_CLASS_TYPES = ("class_declaration", "abstract_class_declaration")


def iter_top_level_classes(root: ts.Node) -> Iterator[ts.Node]:
    """Class declarations at module level, exported or not."""
    for statement in root.named_children:
        if statement.type in _CLASS_TYPES:
            yield statement
        elif statement.type == "export_statement":
            declaration = statement.child_by_field_name("declaration")
            if declaration is not None and declaration.type in _CLASS_TYPES:
                yield declaration


def extends_clause(class_node: ts.Node) -> Optional[ts.Node]:
    for child in class_node.named_children:
        if child.type == "class_heritage":
            for clause in child.named_children:
                if clause.type == "extends_clause":
                    return clause
    return None


def extends_flow(class_node: ts.Node, source: SourceText) -> bool:
    clause = extends_clause(class_node)
    if clause is None:
        return False
    value = clause.child_by_field_name("value")
    return value is not None and bool(_FLOW_BASE_RE.match(source.node_text(value)))


def find_flow_class(root: ts.Node, source: SourceText) -> Optional[ts.Node]:
    """First module-level class extending BubbleFlow."""
    for class_node in iter_top_level_classes(root):
        if extends_flow(class_node, source):
            return class_node
    return None


def class_name(class_node: ts.Node, source: SourceText) -> Optional[str]:
    name = class_node.child_by_field_name("name")
    return source.node_text(name) if name is not None else None


def is_exported(class_node: ts.Node) -> bool:
    parent = class_node.parent
    return parent is not None and parent.type == "export_statement"


def method_name(method: ts.Node, source: SourceText) -> Optional[str]:
    name = method.child_by_field_name("name")
    if name is None or name.type != "property_identifier":
        return None
    return source.node_text(name)


def is_instance_method(method: ts.Node, source: SourceText) -> bool:
    """Plain, non-static method (no getters, setters or constructor)."""
    if method.type != "method_definition":
        return False
    if has_token(method, "static") or has_token(method, "get") or has_token(method, "set"):
        return False
    name = method_name(method, source)
    return name is not None and name != "constructor"


def instance_methods(class_node: ts.Node, source: SourceText) -> Dict[str, ts.Node]:
    """Instance methods of a class keyed by name, in source order."""
    methods: Dict[str, ts.Node] = {}
    body = class_node.child_by_field_name("body")
    if body is None:
        return methods
    for member in body.named_children:
        if is_instance_method(member, source):
            methods.setdefault(method_name(member, source), member)
    return methods


def class_fields(class_node: ts.Node) -> List[ts.Node]:
    body = class_node.child_by_field_name("body")
    if body is None:
        return []
    return [m for m in body.named_children if m.type == "public_field_definition"]


def find_handle_function(root: ts.Node, source: SourceText) -> Optional[ts.Node]:
    """The ``handle`` entrypoint: a module function, a const arrow, or a class method.

    Returns the function-like node (function_declaration, arrow_function,
    function_expression or method_definition).
    """
    for statement in root.named_children:
        node = statement
        if node.type == "export_statement":
            node = node.child_by_field_name("declaration") or node
        if node.type == "function_declaration":
            name = node.child_by_field_name("name")
            if name is not None and source.node_text(name) == HANDLE_METHOD:
                return node
        elif node.type in ("lexical_declaration", "variable_declaration"):
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name = declarator.child_by_field_name("name")
                value = declarator.child_by_field_name("value")
                if (
                    name is not None
                    and source.node_text(name) == HANDLE_METHOD
                    and value is not None
                    and value.type in ("arrow_function", "function_expression", "function")
                ):
                    return value

    flow_class = find_flow_class(root, source)
    candidates = [flow_class] if flow_class is not None else []
    candidates.extend(c for c in iter_top_level_classes(root) if c is not flow_class)
    for class_node in candidates:
        handle = instance_methods(class_node, source).get(HANDLE_METHOD)
        if handle is not None:
            return handle
    return None


def module_functions(root: ts.Node, source: SourceText) -> Dict[str, ts.Node]:
    """Module-level function declarations and const-bound arrows, by name."""
    functions: Dict[str, ts.Node] = {}
    for statement in root.named_children:
        node = statement
        if node.type == "export_statement":
            node = node.child_by_field_name("declaration") or node
        if node.type == "function_declaration":
            name = node.child_by_field_name("name")
            if name is not None:
                functions.setdefault(source.node_text(name), node)
        elif node.type in ("lexical_declaration", "variable_declaration"):
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name = declarator.child_by_field_name("name")
                value = declarator.child_by_field_name("value")
                if (
                    name is not None
                    and name.type == "identifier"
                    and value is not None
                    and value.type in ("arrow_function", "function_expression", "function")
                ):
                    functions.setdefault(source.node_text(name), value)
    return functions
