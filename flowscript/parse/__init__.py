"""
flowscript/parse - Parser layer for flow scripts.

- source: tree-sitter front end and node helpers
- scope: lexical scopes and variable ids
- locator: bubble instantiations with extracted parameters
- dependencies: flattened and hierarchical bubble dependencies
- workflow: control-flow tree of the handle method
- trigger / cron / schema: trigger detection and payload schema inference
- script: FlowScript, the driver tying the above together

Usage:
    from flowscript.parse import FlowScript, parse_source, build_scopes

    tree, source = parse_source(text)
    scopes = build_scopes(tree, source)
"""

from .cron import CronValidation, describe_cron_expression, validate_cron_expression
from .dependencies import build_dependency_graph, find_dependencies, hash_unique_id_to_variable_id
from .exceptions import BubbleExtractionError, FlowScriptError, FlowSyntaxError, MutationError
from .locator import BubbleLocator, locate_bubbles
from .schema import infer_payload_schema
from .scope import ScopeInfo, ScopeManager, Variable, build_scopes
from .script import FlowScript
from .source import SourceText, parse_source, syntax_errors
from .trigger import detect_trigger
from .types import (
    BubbleNodeType,
    BubbleParameter,
    BubbleParameterType,
    BubbleTrigger,
    DependencyGraphNode,
    InstanceMethodLocation,
    Location,
    ParameterSource,
    ParsedBubble,
    ParsedWorkflow,
)
from .workflow import WorkflowBuilder, build_workflow

__all__ = [
    # Driver
    "FlowScript",
    # Front end
    "SourceText",
    "parse_source",
    "syntax_errors",
    # Scopes
    "ScopeInfo",
    "ScopeManager",
    "Variable",
    "build_scopes",
    # Bubbles
    "BubbleLocator",
    "locate_bubbles",
    "build_dependency_graph",
    "find_dependencies",
    "hash_unique_id_to_variable_id",
    # Workflow
    "WorkflowBuilder",
    "build_workflow",
    # Trigger and schema
    "CronValidation",
    "describe_cron_expression",
    "validate_cron_expression",
    "detect_trigger",
    "infer_payload_schema",
    # Types
    "BubbleNodeType",
    "BubbleParameter",
    "BubbleParameterType",
    "BubbleTrigger",
    "DependencyGraphNode",
    "InstanceMethodLocation",
    "Location",
    "ParameterSource",
    "ParsedBubble",
    "ParsedWorkflow",
    # Errors
    "BubbleExtractionError",
    "FlowScriptError",
    "FlowSyntaxError",
    "MutationError",
]
