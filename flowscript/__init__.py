"""
flowscript - Static analysis for BubbleFlow scripts.

Parses a TypeScript flow script (a class extending ``BubbleFlow`` with an
``async handle`` method) and reports the bubbles it instantiates, their
dependency graphs, the control-flow tree of ``handle``, the declared
trigger, and the payload schema.

Usage:
    from flowscript import FlowScript, validate_and_extract

    script = FlowScript(text)
    script.workflow.to_dict()

    result = validate_and_extract(text)
    if not result.valid:
        print(result.errors)
"""

from .parse.script import FlowScript
from .validator.flow_validator import ExtractionResult, validate_and_extract, validate_flow

__all__ = [
    "FlowScript",
    "ExtractionResult",
    "validate_and_extract",
    "validate_flow",
]

__version__ = "0.1.0"
