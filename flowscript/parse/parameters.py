"""
parameters.py - Classify bubble constructor arguments into tagged parameters.

Classification order matters: a member expression on ``process.env`` is an
``env`` parameter and must be checked before the generic member-expression
rule that yields ``variable``.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Tuple

import tree_sitter as ts

from .source import SourceText, decode_string, unwrap_parens
from .types import BubbleParameter, BubbleParameterType, ParameterSource

_ENV_PREFIX = "process.env."

_IDENTIFIER = r"[A-Za-z_$][A-Za-z0-9_$]*"
_INDEX_ACCESS_RE = re.compile(rf"^({_IDENTIFIER})\[")
_PROPERTY_ACCESS_RE = re.compile(rf"^({_IDENTIFIER})\.")
_SIMPLE_IDENTIFIER_RE = re.compile(rf"^{_IDENTIFIER}$")

_MEMBER_TYPES = ("member_expression", "subscript_expression")


def classify_expression(node: ts.Node, source: SourceText) -> Tuple[Any, BubbleParameterType]:
    """Return ``(value, type)`` for a parameter value expression."""
    text = source.node_text(node)
    kind = node.type

    if kind == "non_null_expression":
        inner = unwrap_parens(node.named_children[0]) if node.named_children else None
        if inner is not None and inner.type in _MEMBER_TYPES and source.node_text(inner).startswith(_ENV_PREFIX):
            return text, BubbleParameterType.ENV
        return text, BubbleParameterType.EXPRESSION

    if kind in _MEMBER_TYPES:
        if text.startswith(_ENV_PREFIX):
            return text, BubbleParameterType.ENV
        return text, BubbleParameterType.VARIABLE

    if kind in ("identifier", "shorthand_property_identifier", "undefined"):
        return text, BubbleParameterType.VARIABLE

    if kind == "string":
        return decode_string(node, source), BubbleParameterType.STRING
    if kind == "number":
        return text, BubbleParameterType.NUMBER
    if kind in ("true", "false"):
        return text, BubbleParameterType.BOOLEAN
    if kind == "template_string":
        return text, BubbleParameterType.STRING
    if kind == "array":
        return text, BubbleParameterType.ARRAY
    if kind == "object":
        return text, BubbleParameterType.OBJECT
    if kind in ("null", "regex"):
        return text, BubbleParameterType.UNKNOWN

    return text, BubbleParameterType.EXPRESSION


def _parameter(
    name: str, value_node: ts.Node, source: SourceText, origin: ParameterSource
) -> BubbleParameter:
    value, param_type = classify_expression(value_node, source)
    return BubbleParameter(
        name=name,
        value=value,
        type=param_type,
        source=origin,
        location=source.location(value_node),
    )


def extract_parameters(argument: Optional[ts.Node], source: SourceText) -> List[BubbleParameter]:
    """Parameters for the first constructor argument of a bubble."""
    if argument is None:
        return []
    if argument.type != "object":
        name = source.node_text(argument) if argument.type == "identifier" else "arg0"
        return [_parameter(name, argument, source, ParameterSource.FIRST_ARG)]

    params: List[BubbleParameter] = []
    for prop in argument.named_children:
        if prop.type == "pair":
            key = prop.child_by_field_name("key")
            value = prop.child_by_field_name("value")
            if key is None or value is None or key.type != "property_identifier":
                continue
            params.append(_parameter(source.node_text(key), value, source, ParameterSource.OBJECT_PROPERTY))
        elif prop.type == "shorthand_property_identifier":
            # { model } is { model: model }
            params.append(
                _parameter(source.node_text(prop), prop, source, ParameterSource.OBJECT_PROPERTY)
            )
        elif prop.type == "spread_element":
            inner = prop.named_children[0] if prop.named_children else None
            if inner is None:
                continue
            name = source.node_text(inner) if inner.type == "identifier" else "spread"
            params.append(_parameter(name, inner, source, ParameterSource.SPREAD))
    return params


def extract_base_variable_name(expression: str) -> Optional[str]:
    """Base identifier of ``prompts[i]``, ``result.data`` or ``name``."""
    trimmed = expression.strip()
    match = _INDEX_ACCESS_RE.match(trimmed) or _PROPERTY_ACCESS_RE.match(trimmed)
    if match:
        return match.group(1)
    if _SIMPLE_IDENTIFIER_RE.match(trimmed):
        return trimmed
    return None
