# flowscript/validator/errors.py
"""Validation error collection and formatting."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

# Error message template: [FAIL] TYPE: location problem -> Fix: action
ERROR_TEMPLATE = "[FAIL] {error_type}: {location} {problem}\n  Fix: {fix_action}"

# Error types
SYNTAX = "SYNTAX"
STRUCTURE = "STRUCTURE"
BUBBLE = "BUBBLE"
TRIGGER = "TRIGGER"
EXTRACTION = "EXTRACTION"

ERROR_TYPES = (SYNTAX, STRUCTURE, BUBBLE, TRIGGER, EXTRACTION)


class ValidationError:
    """Structured validation error.

    ``problem`` is the plain message reported to API callers; syntax errors
    are prefixed with their line (``line 4: Unexpected token ')'``).
    """

    def __init__(
        self,
        error_type: str,
        location: str,
        problem: str,
        fix_action: str = "",
        line_number: Optional[int] = None,
    ):
        self.error_type = error_type
        self.location = location
        self.problem = problem
        self.fix_action = fix_action
        self.line_number = line_number

    @property
    def message(self) -> str:
        if self.error_type == SYNTAX and self.line_number is not None:
            return f"line {self.line_number}: {self.problem}"
        return self.problem

    def format(self) -> str:
        """Format error message."""
        return ERROR_TEMPLATE.format(
            error_type=self.error_type,
            location=self.location,
            problem=self.problem,
            fix_action=self.fix_action or "-",
        )

    def sort_key(self) -> Tuple[int, int]:
        """Sort key for deterministic ordering."""
        return (ERROR_TYPES.index(self.error_type) if self.error_type in ERROR_TYPES else len(ERROR_TYPES),
                self.line_number or 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "type": self.error_type,
            "location": self.location,
            "problem": self.problem,
            "fix_action": self.fix_action,
            "line_number": self.line_number,
        }


class ValidationResult:
    """Collects validation errors and warnings."""

    def __init__(self):
        self.errors: List[ValidationError] = []
        self.warnings: List[ValidationError] = []

    def add_error(
        self,
        error_type: str,
        location: str,
        problem: str,
        fix_action: str = "",
        line_number: Optional[int] = None,
    ):
        """Add a validation error."""
        self.errors.append(ValidationError(error_type, location, problem, fix_action, line_number))

    def add_warning(
        self,
        error_type: str,
        location: str,
        problem: str,
        fix_action: str = "",
        line_number: Optional[int] = None,
    ):
        """Add a validation warning (suspicious but runnable)."""
        self.warnings.append(ValidationError(error_type, location, problem, fix_action, line_number))

    def has_errors(self) -> bool:
        """Check if any errors were collected."""
        return len(self.errors) > 0

    @property
    def valid(self) -> bool:
        return not self.has_errors()

    def messages(self) -> List[str]:
        """Plain error messages in the order they were found."""
        return [e.message for e in self.errors]

    def sorted_errors(self) -> List[ValidationError]:
        """Get errors in deterministic order."""
        return sorted(self.errors, key=lambda e: e.sort_key())

    def sorted_warnings(self) -> List[ValidationError]:
        """Get warnings in deterministic order."""
        return sorted(self.warnings, key=lambda e: e.sort_key())

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for JSON serialization."""
        return {
            "errors": [e.to_dict() for e in self.sorted_errors()],
            "warnings": [w.to_dict() for w in self.sorted_warnings()],
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "status": "FAIL" if self.has_errors() else "PASS",
        }
