"""
trigger.py - Detect the trigger declared by a flow class.

    export class MyFlow extends BubbleFlow<'schedule/cron'> {
      readonly cronSchedule = '0 9 * * 1-5';
      ...
    }

The event type is the literal generic argument of ``BubbleFlow``; cron
flows also declare a ``cronSchedule`` string field. The tree is consulted
first and the raw text second, so a class the parser recovers badly still
reports its trigger.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import tree_sitter as ts

from .flow_class import class_fields, extends_clause, find_flow_class
from .source import SourceText, decode_string
from .types import BubbleTrigger

logger = logging.getLogger(__name__)

CRON_TRIGGER = "schedule/cron"
DEFAULT_TRIGGER = "webhook/http"
CRON_FIELD = "cronSchedule"

_TRIGGER_RE = re.compile(r"extends\s+BubbleFlow\s*<\s*(['\"`])([^'\"`]+)\1\s*>")
_CRON_RE = re.compile(r"readonly\s+cronSchedule\s*(?::\s*\w+\s*)?=\s*['\"`]([^'\"`]+)['\"`]")


def _literal_type_value(node: ts.Node, source: SourceText) -> Optional[str]:
    if node.type == "literal_type":
        for child in node.named_children:
            value = decode_string(child, source)
            if value is not None:
                return value
        return None
    return decode_string(node, source)


def _trigger_type_from_tree(class_node: ts.Node, source: SourceText) -> Optional[str]:
    clause = extends_clause(class_node)
    if clause is None:
        return None
    type_arguments = clause.child_by_field_name("type_arguments")
    if type_arguments is None:
        type_arguments = next((c for c in clause.named_children if c.type == "type_arguments"), None)
    if type_arguments is None or not type_arguments.named_children:
        return None
    return _literal_type_value(type_arguments.named_children[0], source)


def _cron_from_tree(class_node: ts.Node, source: SourceText) -> Optional[str]:
    for member in class_fields(class_node):
        name = member.child_by_field_name("name")
        value = member.child_by_field_name("value")
        if name is None or source.node_text(name) != CRON_FIELD or value is None:
            continue
        return decode_string(value, source)
    return None


def detect_trigger(tree: ts.Tree, source: SourceText) -> Optional[BubbleTrigger]:
    """Trigger of the flow class, or None when no literal event type is declared."""
    trigger_type = None
    cron_schedule = None

    flow_class = find_flow_class(tree.root_node, source)
    if flow_class is not None:
        trigger_type = _trigger_type_from_tree(flow_class, source)
        cron_schedule = _cron_from_tree(flow_class, source)

    if trigger_type is None:
        match = _TRIGGER_RE.search(source.text)
        if match:
            logger.debug("Trigger type recovered from source text")
            trigger_type = match.group(2)
    if trigger_type is None:
        return None

    if trigger_type != CRON_TRIGGER:
        return BubbleTrigger(type=trigger_type)
    if cron_schedule is None:
        match = _CRON_RE.search(source.text)
        if match:
            cron_schedule = match.group(1)
    return BubbleTrigger(type=trigger_type, cron_schedule=cron_schedule)
