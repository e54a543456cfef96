"""
schema.py - Infer the payload JSON schema from the handle signature.

    interface Payload {
      // Who to greet
      name: string;
      tags?: string[];
    }
    async handle(payload: Payload) {
      const { name = 'world' } = payload;

becomes::

    {"type": "object",
     "properties": {"name": {"type": "string", "description": "Who to greet",
                             "default": "world"},
                    "tags": {"type": "array", "items": {"type": "string"}}},
     "required": ["name"]}

Types that cannot be expressed (generics other than ``Array<T>``, imported
names, mapped types) become the empty schema ``{}``.

Usage:
    from flowscript.parse.schema import infer_payload_schema

    schema = infer_payload_schema(tree, source)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import tree_sitter as ts

from flowscript.config.trigger_registry import get_trigger_payload_schema

from .comments import extract_comment_for_line
from .flow_class import find_handle_function
from .source import SourceText, decode_string, has_token, start_line, statements_of

logger = logging.getLogger(__name__)

TRIGGER_EVENT_REGISTRY = "BubbleTriggerEventRegistry"

_PRIMITIVES = {
    "string": {"type": "string"},
    "number": {"type": "number"},
    "boolean": {"type": "boolean"},
    "null": {"type": "null"},
}

# Marker for default expressions that need runtime evaluation
_UNSET = object()


# =============================================================================
# Type conversion
# =============================================================================


class TypeConverter:
    """Converts tree-sitter type nodes of one source file into JSON schema."""

    def __init__(self, root: ts.Node, source: SourceText):
        self.root = root
        self.source = source
        self._resolving: List[str] = []

    def convert(self, node: Optional[ts.Node]) -> Dict[str, Any]:
        if node is None:
            return {}
        kind = node.type
        text = self.source.node_text(node)

        if kind == "type_annotation":
            inner = node.named_children[0] if node.named_children else None
            return self.convert(inner)
        if kind == "parenthesized_type":
            return self.convert(node.named_children[0] if node.named_children else None)
        if kind == "predefined_type":
            if text in _PRIMITIVES:
                return dict(_PRIMITIVES[text])
            return {}
        if kind == "literal_type":
            return self._literal(node)
        if kind == "array_type":
            element = node.named_children[0] if node.named_children else None
            return {"type": "array", "items": self.convert(element)}
        if kind == "union_type":
            return {"anyOf": [self.convert(t) for t in self._flatten(node, "union_type")]}
        if kind == "intersection_type":
            return {"allOf": [self.convert(t) for t in self._flatten(node, "intersection_type")]}
        if kind in ("object_type", "interface_body"):
            return self._object(node)
        if kind == "lookup_type":
            return self._lookup(node)
        if kind == "generic_type":
            return self._generic(node)
        if kind == "type_identifier":
            return self.resolve_name(text)
        return {}

    def _flatten(self, node: ts.Node, kind: str) -> List[ts.Node]:
        members: List[ts.Node] = []
        for child in node.named_children:
            if child.type == kind:
                members.extend(self._flatten(child, kind))
            else:
                members.append(child)
        return members

    def _literal(self, node: ts.Node) -> Dict[str, Any]:
        inner = node.named_children[0] if node.named_children else None
        if inner is None:
            return {}
        if inner.type in ("null", "undefined"):
            return dict(_PRIMITIVES["null"]) if inner.type == "null" else {}
        value = literal_value(inner, self.source)
        if value is _UNSET:
            return {}
        return {"const": value}

    def _object(self, node: ts.Node) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for member in node.named_children:
            if member.type != "property_signature":
                continue
            key = member.child_by_field_name("name")
            if key is None:
                continue
            if key.type == "property_identifier":
                name = self.source.node_text(key)
            else:
                name = decode_string(key, self.source)
            if not name:
                continue
            prop = self.convert(member.child_by_field_name("type"))
            description = extract_comment_for_line(self.source.lines, start_line(member))
            if description:
                prop["description"] = description
            properties[name] = prop
            if not has_token(member, "?"):
                required.append(name)

        schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def _lookup(self, node: ts.Node) -> Dict[str, Any]:
        children = node.named_children
        if len(children) != 2:
            return {}
        target, index = children
        if self.source.node_text(target) != TRIGGER_EVENT_REGISTRY or index.type != "literal_type":
            return {}
        key = self._literal(index).get("const")
        if not isinstance(key, str):
            return {}
        return get_trigger_payload_schema(key) or {}

    def _generic(self, node: ts.Node) -> Dict[str, Any]:
        name = self.source.node_text(node.child_by_field_name("name"))
        arguments = node.child_by_field_name("type_arguments")
        if name in ("Array", "ReadonlyArray") and arguments is not None and arguments.named_children:
            return {"type": "array", "items": self.convert(arguments.named_children[0])}
        return {}

    def resolve_name(self, name: str) -> Dict[str, Any]:
        """Schema of a same-file interface or type alias, ``{}`` when unknown."""
        if name in self._resolving:
            return {}
        declaration = self._find_declaration(name)
        if declaration is None:
            return {}
        self._resolving.append(name)
        try:
            if declaration.type == "interface_declaration":
                return self.convert(declaration.child_by_field_name("body"))
            return self.convert(declaration.child_by_field_name("value"))
        finally:
            self._resolving.pop()

    def _find_declaration(self, name: str) -> Optional[ts.Node]:
        for statement in self.root.named_children:
            node = statement
            if node.type == "export_statement":
                node = node.child_by_field_name("declaration") or node
            if node.type not in ("interface_declaration", "type_alias_declaration"):
                continue
            if self.source.node_text(node.child_by_field_name("name")) == name:
                return node
        return None


# =============================================================================
# Default values
# =============================================================================


def _number(text: str) -> Any:
    cleaned = text.replace("_", "")
    try:
        return int(cleaned, 0)
    except ValueError:
        pass
    try:
        value = float(cleaned)
    except ValueError:
        return _UNSET
    return int(value) if value.is_integer() else value


def literal_value(node: ts.Node, source: SourceText) -> Any:
    """JSON value of a literal node, or ``_UNSET``."""
    kind = node.type
    if kind in ("string", "template_string"):
        value = decode_string(node, source)
        return _UNSET if value is None else value
    if kind == "number":
        return _number(source.node_text(node))
    if kind == "true":
        return True
    if kind == "false":
        return False
    if kind == "null":
        return None
    return _UNSET


def evaluate_default(node: Optional[ts.Node], source: SourceText) -> Any:
    """Value of a default expression that needs no evaluation, or ``_UNSET``."""
    if node is None:
        return _UNSET
    kind = node.type
    if kind in ("string", "template_string", "number", "true", "false", "null"):
        return literal_value(node, source)

    if kind == "unary_expression":
        operator = source.node_text(node.child_by_field_name("operator"))
        argument = node.child_by_field_name("argument")
        if argument is None:
            return _UNSET
        if operator in ("-", "+") and argument.type == "number":
            value = literal_value(argument, source)
            if value is _UNSET:
                return _UNSET
            return -value if operator == "-" else value
        if operator == "!" and argument.type in ("true", "false"):
            return argument.type == "false"
        return _UNSET

    if kind == "array":
        items = []
        for element in node.named_children:
            if element.type == "comment":
                continue
            if element.type == "template_string":
                return _UNSET
            value = literal_value(element, source)
            if value is _UNSET:
                return _UNSET
            items.append(value)
        return items

    if kind == "object":
        result: Dict[str, Any] = {}
        for prop in node.named_children:
            if prop.type == "comment":
                continue
            if prop.type != "pair":
                return _UNSET
            key = prop.child_by_field_name("key")
            value_node = prop.child_by_field_name("value")
            if key is None or value_node is None or value_node.type == "template_string":
                return _UNSET
            if key.type == "property_identifier":
                name = source.node_text(key)
            elif key.type == "string":
                name = decode_string(key, source)
            else:
                return _UNSET
            value = literal_value(value_node, source)
            if value is _UNSET:
                return _UNSET
            result[name] = value
        return result

    return _UNSET


def _first_parameter(handle: ts.Node) -> Optional[ts.Node]:
    single = handle.child_by_field_name("parameter")
    if single is not None:
        return single
    params = handle.child_by_field_name("parameters")
    if params is None:
        return None
    for param in params.named_children:
        if param.type != "comment":
            return param
    return None


def _parameter_name(param: ts.Node, source: SourceText) -> Optional[str]:
    pattern = param.child_by_field_name("pattern") if param.type in (
        "required_parameter", "optional_parameter"
    ) else param
    if pattern is not None and pattern.type == "rest_pattern" and pattern.named_children:
        pattern = pattern.named_children[0]
    if pattern is not None and pattern.type == "identifier":
        return source.node_text(pattern)
    return None


def extract_payload_defaults(handle: ts.Node, source: SourceText) -> Dict[str, Any]:
    """Defaults from ``const { key = literal } = payload`` at the top of handle."""
    param = _first_parameter(handle)
    name = _parameter_name(param, source) if param is not None else None
    body = handle.child_by_field_name("body")
    if name is None or body is None or body.type != "statement_block":
        return {}

    defaults: Dict[str, Any] = {}
    for statement in statements_of(body):
        if statement.type not in ("lexical_declaration", "variable_declaration"):
            continue
        for declarator in statement.named_children:
            if declarator.type != "variable_declarator":
                continue
            pattern = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            if (
                pattern is None
                or pattern.type != "object_pattern"
                or value is None
                or value.type != "identifier"
                or source.node_text(value) != name
            ):
                continue
            for prop in pattern.named_children:
                key, default_node = _destructured_default(prop, source)
                if key is None or key in defaults:
                    continue
                evaluated = evaluate_default(default_node, source)
                if evaluated is not _UNSET:
                    defaults[key] = evaluated
    return defaults


def _destructured_default(prop: ts.Node, source: SourceText):
    """``(key, default expression)`` of one object-pattern entry."""
    if prop.type == "object_assignment_pattern":
        left = prop.child_by_field_name("left")
        return source.node_text(left), prop.child_by_field_name("right")
    if prop.type == "pair_pattern":
        key = prop.child_by_field_name("key")
        value = prop.child_by_field_name("value")
        if key is None or value is None or value.type != "assignment_pattern":
            return None, None
        if key.type == "property_identifier":
            name = source.node_text(key)
        else:
            name = decode_string(key, source)
        return name, value.child_by_field_name("right")
    return None, None


# =============================================================================
# Entry point
# =============================================================================


def infer_payload_schema(tree: ts.Tree, source: SourceText) -> Optional[Dict[str, Any]]:
    """JSON schema of the handle payload.

    Returns:
        None when there is no handle or it takes no parameter, ``{}`` when
        the parameter carries no type annotation, the inferred schema
        otherwise (with harvested defaults on matching properties).
    """
    handle = find_handle_function(tree.root_node, source)
    if handle is None:
        return None
    param = _first_parameter(handle)
    if param is None:
        return None

    annotation = param.child_by_field_name("type") if param.type in (
        "required_parameter", "optional_parameter"
    ) else None
    if annotation is None:
        return {}

    schema = TypeConverter(tree.root_node, source).convert(annotation) or {}

    properties = schema.get("properties")
    if isinstance(properties, dict):
        for key, value in extract_payload_defaults(handle, source).items():
            if key in properties:
                properties[key] = dict(properties[key], default=value)
    logger.debug("Inferred payload schema with %d properties", len(properties or {}))
    return schema
