"""
Pydantic schema models for flow script analysis results.

These models give typed, JSON-ready views of the dataclasses produced by
the parser and validator. Consumers that need a stable response contract
(an HTTP layer, the CLI's ``--json`` output) build them with
``validation_response``.

Usage:
    from flowscript.schema import validation_response

    response = validation_response(validate_and_extract(code))
    print(response.model_dump_json(exclude_none=True))
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from flowscript.parse.types import (
    BubbleNodeType,
    BubbleParameterType,
    BubbleTrigger,
    DependencyGraphNode,
    Location,
    ParameterSource,
    ParsedBubble,
)
from flowscript.validator.flow_validator import ExtractionResult


# =============================================================================
# Bubbles
# =============================================================================


class LocationModel(BaseModel):
    """Source span (1-based lines, 0-based columns)."""
    start_line: int = Field(description="First line of the span")
    start_col: int = Field(description="Column on the first line")
    end_line: int = Field(description="Last line of the span")
    end_col: int = Field(description="Column after the span on the last line")


class BubbleParameterModel(BaseModel):
    """One constructor parameter of a bubble."""
    name: str = Field(description="Property name, spread identifier or first-arg identifier")
    value: Any = Field(None, description="Literal value for strings, source text otherwise")
    type: BubbleParameterType = Field(description="Classification tag")
    source: ParameterSource = Field(description="How the value reached the constructor")
    location: Optional[LocationModel] = Field(None, description="Span of the value expression")
    variable_id: Optional[int] = Field(None, description="Resolved variable for variable-typed values")


class DependencyGraphNodeModel(BaseModel):
    """Node of a bubble's dependency tree."""
    name: str = Field(description="Registry key")
    unique_id: str = Field(description="Path-derived id, e.g. '12.ai-agent#1'")
    variable_id: int = Field(description="Owning bubble id at the root, hashed id elsewhere")
    node_type: BubbleNodeType = Field(description="Registry node type")
    variable_name: Optional[str] = Field(None, description="Instance name inside a composite bubble")
    dependencies: List["DependencyGraphNodeModel"] = Field(default_factory=list, description="Child nodes")


class ParsedBubbleModel(BaseModel):
    """One located bubble instantiation."""
    variable_id: int = Field(description="Scope variable id, negative for anonymous bubbles")
    variable_name: str = Field(description="Bound name or synthetic anonymous name")
    bubble_name: str = Field(description="Registry key")
    class_name: str = Field(description="Constructor identifier in source")
    parameters: List[BubbleParameterModel] = Field(default_factory=list, description="Constructor parameters")
    has_await: bool = Field(description="The expression was awaited")
    has_action_call: bool = Field(description="The expression chained .action()")
    node_type: BubbleNodeType = Field(description="Registry node type")
    location: LocationModel = Field(description="Span of the new expression")
    description: Optional[str] = Field(None, description="Comment directly above the statement")
    dependencies: List[str] = Field(default_factory=list, description="Flattened dependency names")
    dependency_graph: Optional[DependencyGraphNodeModel] = Field(None, description="Dependency tree")


class BubbleTriggerModel(BaseModel):
    """Trigger declared by the flow class."""
    type: str = Field(description="Trigger event key, e.g. 'webhook/http'")
    cron_schedule: Optional[str] = Field(None, description="Cron expression for schedule/cron flows")


# =============================================================================
# Validation
# =============================================================================


class ValidationResponse(BaseModel):
    """Result of validating and extracting a flow script."""
    valid: bool = Field(description="No validation errors were found")
    errors: List[str] = Field(default_factory=list, description="Error messages")
    warnings: List[str] = Field(default_factory=list, description="Warning messages")
    bubbles: Optional[Dict[str, ParsedBubbleModel]] = Field(None, description="Bubbles keyed by variable id")
    workflow: Optional[Dict[str, Any]] = Field(None, description="Workflow tree (root and bubbles)")
    input_schema: Optional[Dict[str, Any]] = Field(None, description="Payload JSON schema")
    trigger: Optional[BubbleTriggerModel] = Field(None, description="Declared trigger")
    required_credentials: Optional[Dict[str, List[str]]] = Field(
        None, description="Credential types needed per bubble name"
    )


def location_model(location: Location) -> LocationModel:
    return LocationModel(
        start_line=location.start_line,
        start_col=location.start_col,
        end_line=location.end_line,
        end_col=location.end_col,
    )


def dependency_graph_model(node: DependencyGraphNode) -> DependencyGraphNodeModel:
    return DependencyGraphNodeModel(
        name=node.name,
        unique_id=node.unique_id,
        variable_id=node.variable_id,
        node_type=node.node_type,
        variable_name=node.variable_name,
        dependencies=[dependency_graph_model(child) for child in node.dependencies],
    )


def parsed_bubble_model(bubble: ParsedBubble) -> ParsedBubbleModel:
    return ParsedBubbleModel(
        variable_id=bubble.variable_id,
        variable_name=bubble.variable_name,
        bubble_name=bubble.bubble_name,
        class_name=bubble.class_name,
        parameters=[
            BubbleParameterModel(
                name=p.name,
                value=p.value,
                type=p.type,
                source=p.source,
                location=location_model(p.location) if p.location else None,
                variable_id=p.variable_id,
            )
            for p in bubble.parameters
        ],
        has_await=bubble.has_await,
        has_action_call=bubble.has_action_call,
        node_type=bubble.node_type,
        location=location_model(bubble.location),
        description=bubble.description,
        dependencies=list(bubble.dependencies),
        dependency_graph=dependency_graph_model(bubble.dependency_graph) if bubble.dependency_graph else None,
    )


def trigger_model(trigger: BubbleTrigger) -> BubbleTriggerModel:
    return BubbleTriggerModel(type=trigger.type, cron_schedule=trigger.cron_schedule)


def validation_response(result: ExtractionResult) -> ValidationResponse:
    """Typed response for a validate_and_extract result."""
    return ValidationResponse(
        valid=result.valid,
        errors=list(result.errors),
        warnings=list(result.warnings),
        bubbles={str(k): parsed_bubble_model(b) for k, b in result.bubbles.items()}
        if result.bubbles is not None else None,
        workflow=result.workflow.to_dict() if result.workflow is not None else None,
        input_schema=result.input_schema,
        trigger=trigger_model(result.trigger) if result.trigger is not None else None,
        required_credentials=result.required_credentials,
    )
