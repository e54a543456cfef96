"""
exceptions.py - Error types raised by the flow script parser.

Validation entry points never raise these; they fold them into a
ValidationResult. Direct users of FlowScript see them as-is.
"""

from __future__ import annotations

from typing import List, Optional


class FlowScriptError(Exception):
    """Base exception for flow script analysis errors."""

    pass


class FlowSyntaxError(FlowScriptError):
    """Raised when source text does not parse."""

    def __init__(self, line: int, message: str, issues: Optional[List["object"]] = None):
        self.line = line
        self.message = message
        self.issues = issues or []
        super().__init__(f"line {line}: {message}")


class BubbleExtractionError(FlowScriptError):
    """Raised when the scope graph and the bubble locator disagree."""

    pass


class MutationError(FlowScriptError, ValueError):
    """Raised when a source rewrite cannot be applied. The buffer is left unchanged."""

    pass
