# flowscript/validator/flow_validator.py
"""
Validate flow scripts and extract their analysis in one call.

Checks run in order and never stop at the first failure:

1. Syntax: tree-sitter ERROR/MISSING nodes, one error per line
2. Structure: BubbleFlow import, a class extending BubbleFlow, an
   ``async handle(`` method, and the class exported
3. Bubble usage: every ``new XxxBubble(`` class imported from the core package

``validate_and_extract`` then checks the trigger and returns the bubbles,
workflow, payload schema and required credentials.

Usage:
    from flowscript.validator.flow_validator import validate_and_extract

    result = validate_and_extract(code)
    if not result.valid:
        print("\\n".join(result.errors))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.config.trigger_registry import TriggerRegistry, is_known_trigger
from flowscript.parse.cron import validate_cron_expression
from flowscript.parse.script import FlowScript
from flowscript.parse.source import parse_source, syntax_errors
from flowscript.parse.types import BubbleTrigger, ParsedBubble, ParsedWorkflow

from .errors import BUBBLE, EXTRACTION, STRUCTURE, SYNTAX, TRIGGER, ValidationResult

logger = logging.getLogger(__name__)

CORE_PACKAGE = "@bubblelab/bubble-core"

CRON_HINT = (
    "please define it with the readonly cronSchedule property inside the BubbleFlow class. "
    "Ex. readonly cronSchedule = '0 0 * * *';"
)
MISSING_CRON_MESSAGE = f"Missing cron schedule, {CRON_HINT}"
INVALID_CRON_MESSAGE = f"Invalid cron schedule, {CRON_HINT}"

_FLOW_CLASS_RE = re.compile(r"class\s+(\w+)\s+extends\s+BubbleFlow")
_CORE_IMPORT_RE = re.compile(r"import\s*{([^}]+)}\s*from\s*['\"]@bubblelab/bubble-core['\"]")
_INSTANTIATION_RE = re.compile(r"new\s+(\w+Bubble)\s*\(")
_ALIAS_RE = re.compile(r"\s+as\s+\w+$")


# =============================================================================
# Script validation
# =============================================================================


def _check_syntax(code: str, result: ValidationResult) -> None:
    tree, source = parse_source(code)
    for issue in syntax_errors(tree, source):
        result.add_error(
            SYNTAX,
            f"line {issue.line}",
            issue.message,
            "Fix the TypeScript syntax",
            line_number=issue.line,
        )


def _check_structure(code: str, result: ValidationResult) -> None:
    if f"from '{CORE_PACKAGE}'" not in code and f'from "{CORE_PACKAGE}"' not in code:
        result.add_error(
            STRUCTURE,
            "imports",
            f"Missing BubbleFlow import from {CORE_PACKAGE}",
            f"Add: import {{ BubbleFlow }} from '{CORE_PACKAGE}';",
        )

    match = _FLOW_CLASS_RE.search(code)
    if not match:
        result.add_error(
            STRUCTURE,
            "script",
            "Code must contain a class that extends BubbleFlow",
            "Declare: export class MyFlow extends BubbleFlow<'webhook/http'> { ... }",
        )
        return

    class_name = match.group(1)
    handle_re = re.compile(
        rf"class\s+{re.escape(class_name)}\s+extends\s+BubbleFlow[\s\S]*?async\s+handle\s*\("
    )
    if not handle_re.search(code):
        result.add_error(
            STRUCTURE,
            f"class {class_name}",
            "does not implement inherited abstract member",
            "Implement: async handle(payload) { ... }",
        )

    if f"export class {class_name}" not in code:
        result.add_error(
            STRUCTURE,
            f"class {class_name}",
            f"Class {class_name} must be exported",
            f"Declare the class as: export class {class_name}",
        )


def imported_bubble_classes(code: str) -> List[str]:
    """Bubble class names imported from the core package."""
    match = _CORE_IMPORT_RE.search(code)
    if not match:
        return []
    names = []
    for item in match.group(1).split(","):
        item = item.strip()
        if item.startswith("type "):
            item = item[len("type "):].strip()
        item = _ALIAS_RE.sub("", item)
        if item.endswith("Bubble") and item != "BubbleFlow":
            names.append(item)
    return names


def _check_bubble_usage(code: str, result: ValidationResult) -> None:
    if not _CORE_IMPORT_RE.search(code):
        return
    imported = set(imported_bubble_classes(code))
    for match in _INSTANTIATION_RE.finditer(code):
        bubble_class = match.group(1)
        if bubble_class not in imported:
            result.add_error(
                BUBBLE,
                bubble_class,
                f"Unregistered bubble class: {bubble_class}. "
                f"All bubble classes must be imported from {CORE_PACKAGE}",
                f"Add {bubble_class} to the {CORE_PACKAGE} import",
                line_number=code.count("\n", 0, match.start()) + 1,
            )


def validate_flow(code: str) -> ValidationResult:
    """Run syntax, structure and bubble-usage checks over a flow script."""
    result = ValidationResult()
    _check_syntax(code, result)
    _check_structure(code, result)
    _check_bubble_usage(code, result)
    logger.debug("Validated flow script: %d errors", len(result.errors))
    return result


def validate_trigger(trigger: Optional[BubbleTrigger]) -> ValidationResult:
    """Trigger checks: a declared event type and, for cron flows, a valid schedule."""
    result = ValidationResult()
    if trigger is None:
        result.add_error(TRIGGER, "class", "Missing trigger event", "Declare: extends BubbleFlow<'webhook/http'>")
        return result

    if not is_known_trigger(trigger.type):
        result.add_warning(
            TRIGGER,
            "class",
            f"Unknown trigger event type '{trigger.type}'",
            f"Use one of: {', '.join(TriggerRegistry.get_instance().keys())}",
        )

    definition = TriggerRegistry.get_instance().get(trigger.type)
    if definition is None or not definition.requires_cron_schedule:
        return result
    if not trigger.cron_schedule:
        result.add_error(TRIGGER, "cronSchedule", MISSING_CRON_MESSAGE)
    elif not validate_cron_expression(trigger.cron_schedule).valid:
        result.add_error(TRIGGER, "cronSchedule", INVALID_CRON_MESSAGE)
    return result


# =============================================================================
# Validation with extraction
# =============================================================================


@dataclass
class ExtractionResult:
    """Outcome of validate_and_extract.

    Attributes:
        valid: No errors were found
        errors: Plain error messages
        warnings: Plain warning messages
        bubbles: Located bubbles keyed by variable id
        workflow: Workflow tree of the handle method
        input_schema: Payload JSON schema (``{}`` when none can be inferred)
        trigger: Declared trigger
        required_credentials: Bubble name to credential types, None when empty
    """
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    bubbles: Optional[Dict[int, ParsedBubble]] = None
    workflow: Optional[ParsedWorkflow] = None
    input_schema: Optional[Dict[str, Any]] = None
    trigger: Optional[BubbleTrigger] = None
    required_credentials: Optional[Dict[str, List[str]]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"valid": self.valid}
        if self.errors:
            data["errors"] = list(self.errors)
        if self.warnings:
            data["warnings"] = list(self.warnings)
        if self.bubbles is not None:
            data["bubbleParameters"] = {str(k): b.to_dict() for k, b in self.bubbles.items()}
        if self.workflow is not None:
            data["workflow"] = self.workflow.to_dict()
        if self.input_schema is not None:
            data["inputSchema"] = self.input_schema
        if self.trigger is not None:
            data["trigger"] = self.trigger.to_dict()
        if self.required_credentials is not None:
            data["requiredCredentials"] = self.required_credentials
        return data


def required_credentials(
    bubbles: Dict[int, ParsedBubble], registry: BubbleRegistry
) -> Optional[Dict[str, List[str]]]:
    """Credential types each bubble needs, including those of its dependencies."""
    required: Dict[str, List[str]] = {}
    for bubble in bubbles.values():
        credentials: List[str] = []
        for name in [bubble.bubble_name] + list(bubble.dependencies):
            for credential in registry.credentials_for(name):
                if credential not in credentials:
                    credentials.append(credential)
        if credentials:
            merged = required.setdefault(bubble.bubble_name, [])
            merged.extend(c for c in credentials if c not in merged)
    return required or None


def validate_and_extract(code: str, registry: Optional[BubbleRegistry] = None) -> ExtractionResult:
    """Validate a flow script and, when it is valid, return its analysis."""
    validation = validate_flow(code)
    if validation.has_errors():
        return ExtractionResult(valid=False, errors=validation.messages())

    if registry is None:
        registry = BubbleRegistry.get_instance()
    try:
        script = FlowScript(code, registry)
        trigger_result = validate_trigger(script.detected_trigger)
        warnings = [w.message for w in validation.warnings + trigger_result.warnings]
        if trigger_result.has_errors():
            return ExtractionResult(valid=False, errors=trigger_result.messages(), warnings=warnings)

        return ExtractionResult(
            valid=True,
            warnings=warnings,
            bubbles=script.bubbles,
            workflow=script.workflow,
            input_schema=script.payload_schema or {},
            trigger=script.detected_trigger,
            required_credentials=required_credentials(script.bubbles, registry),
        )
    except Exception as e:
        failure = ValidationResult()
        failure.add_error(
            EXTRACTION,
            "handle",
            str(e) or "Extraction failed",
            "Bind every bubble to a declared variable or instantiate it inline",
        )
        logger.warning("%s", failure.errors[0].format(), exc_info=True)
        return ExtractionResult(valid=False, errors=failure.messages())
