"""Tests for flow validation and validate_and_extract."""

import logging

import pytest

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.validator.errors import BUBBLE, STRUCTURE, SYNTAX, ValidationResult
from flowscript.validator.flow_validator import (
    INVALID_CRON_MESSAGE,
    MISSING_CRON_MESSAGE,
    imported_bubble_classes,
    validate_and_extract,
    validate_flow,
)


IMPORT = "import { BubbleFlow, HelloWorldBubble } from '@bubblelab/bubble-core';\n\n"


def _flow(body, trigger="webhook/http", class_prefix="export "):
    return (
        IMPORT
        + f"{class_prefix}class TestFlow extends BubbleFlow<'{trigger}'> {{\n"
        + body
        + "}\n"
    )


HANDLE = "  async handle(payload: { name: string }) {\n    return payload.name;\n  }\n"


class TestStructure:
    """Imports, class shape and export."""

    def test_valid_flow(self, digest_flow):
        """A well-formed flow has no errors."""
        result = validate_flow(digest_flow)
        assert result.valid
        assert result.errors == []

    def test_missing_import(self):
        """The core package must be imported."""
        code = "export class TestFlow extends BubbleFlow<'webhook/http'> {\n" + HANDLE + "}\n"
        messages = validate_flow(code).messages()
        assert "Missing BubbleFlow import from @bubblelab/bubble-core" in messages

    def test_missing_flow_class(self):
        """A script needs a class extending BubbleFlow."""
        messages = validate_flow(IMPORT + "const a = 1;\n").messages()
        assert messages == ["Code must contain a class that extends BubbleFlow"]

    def test_missing_handle(self):
        """The flow class must implement async handle."""
        result = validate_flow(_flow("  run() {}\n"))
        assert result.messages() == ["does not implement inherited abstract member"]
        assert result.errors[0].error_type == STRUCTURE

    def test_class_not_exported(self):
        """The flow class must be exported."""
        messages = validate_flow(_flow(HANDLE, class_prefix="")).messages()
        assert messages == ["Class TestFlow must be exported"]


class TestBubbleUsage:
    """Instantiated bubble classes must be imported."""

    def test_unregistered_bubble(self):
        """A bubble class missing from the import is reported with its line."""
        body = "  async handle() {\n    await new FooBubble({}).action();\n  }\n"
        result = validate_flow(_flow(body))
        assert result.messages() == [
            "Unregistered bubble class: FooBubble. "
            "All bubble classes must be imported from @bubblelab/bubble-core"
        ]
        assert result.errors[0].error_type == BUBBLE
        assert result.errors[0].line_number == 5

    def test_imported_bubble_classes(self):
        """Aliases and type-only imports are normalized; BubbleFlow is skipped."""
        code = (
            "import { BubbleFlow, SlackBubble as Slack, type AIAgentBubble, helper } "
            "from '@bubblelab/bubble-core';\n"
        )
        assert imported_bubble_classes(code) == ["SlackBubble", "AIAgentBubble"]


class TestSyntax:
    """Parse errors are reported per line."""

    def test_syntax_error(self):
        """Syntax errors carry a line prefix."""
        body = "  async handle() {\n    const x = ;\n  }\n"
        result = validate_flow(_flow(body))
        syntax = [e for e in result.errors if e.error_type == SYNTAX]
        assert syntax
        assert syntax[0].message.startswith("line ")
        assert not result.valid


class TestValidateAndExtract:
    """Validation plus analysis."""

    def test_extracts_digest_flow(self, digest_flow):
        """Valid flows return bubbles, workflow, schema and trigger."""
        result = validate_and_extract(digest_flow)
        assert result.valid
        assert sorted(result.bubbles) == [-1, 9]
        assert result.workflow is not None
        assert result.input_schema["required"] == ["channel"]
        assert result.trigger.type == "webhook/http"

    def test_required_credentials(self, digest_flow):
        """Credentials include those of dependencies."""
        credentials = validate_and_extract(digest_flow).required_credentials
        assert credentials == {
            "ai-agent": [
                "OPENAI_CRED",
                "GOOGLE_GEMINI_CRED",
                "ANTHROPIC_CRED",
                "OPENROUTER_CRED",
                "FIRECRAWL_API_KEY",
            ],
            "slack": ["SLACK_CRED"],
        }

    def test_no_credentials_is_none(self):
        """Flows whose bubbles need no credentials report None."""
        body = (
            "  async handle() {\n"
            "    const hello = new HelloWorldBubble({ name: 'x' });\n"
            "    return await hello.action();\n"
            "  }\n"
        )
        result = validate_and_extract(_flow(body))
        assert result.valid
        assert result.required_credentials is None

    def test_invalid_flow_has_no_analysis(self):
        """Errors short-circuit extraction."""
        result = validate_and_extract(IMPORT + "const a = 1;\n")
        assert not result.valid
        assert result.bubbles is None
        assert result.errors == ["Code must contain a class that extends BubbleFlow"]

    def test_cron_flow(self, report_flow):
        """Cron flows with a valid schedule pass."""
        result = validate_and_extract(report_flow)
        assert result.valid
        assert result.trigger.cron_schedule == "0 9 * * 1-5"

    def test_missing_cron_schedule(self):
        """Cron flows need a cronSchedule property."""
        result = validate_and_extract(_flow(HANDLE, trigger="schedule/cron"))
        assert not result.valid
        assert result.errors == [MISSING_CRON_MESSAGE]

    def test_invalid_cron_schedule(self):
        """The schedule must be a valid five-field expression."""
        body = "  readonly cronSchedule = '61 * * * *';\n" + HANDLE
        result = validate_and_extract(_flow(body, trigger="schedule/cron"))
        assert result.errors == [INVALID_CRON_MESSAGE]

    def test_missing_trigger(self):
        """A flow class without a trigger type argument is rejected."""
        code = IMPORT + "export class TestFlow extends BubbleFlow {\n" + HANDLE + "}\n"
        result = validate_and_extract(code)
        assert result.errors == ["Missing trigger event"]

    def test_unknown_trigger_warns(self):
        """Unknown trigger types are a warning, not an error."""
        result = validate_and_extract(_flow(HANDLE, trigger="github/push"))
        assert result.valid
        assert result.warnings == ["Unknown trigger event type 'github/push'"]

    def test_extraction_failure_is_reported(self, digest_flow):
        """Analysis errors become an invalid result instead of raising."""
        result = validate_and_extract(digest_flow, BubbleRegistry())
        assert not result.valid
        assert len(result.errors) == 1

    def test_extraction_failure_is_logged(self, digest_flow, caplog):
        """The failure is logged as an EXTRACTION error with a fix."""
        with caplog.at_level(logging.WARNING, logger="flowscript.validator.flow_validator"):
            result = validate_and_extract(digest_flow, BubbleRegistry())
        assert "[FAIL] EXTRACTION: handle " in caplog.text
        assert result.errors[0] in caplog.text
        assert "Fix: Bind every bubble" in caplog.text

    def test_to_dict(self, digest_flow):
        """The wire shape uses camelCase keys and omits empty parts."""
        data = validate_and_extract(digest_flow).to_dict()
        assert set(data) == {
            "valid", "bubbleParameters", "workflow", "inputSchema", "trigger", "requiredCredentials",
        }
        assert set(data["bubbleParameters"]) == {"9", "-1"}


class TestValidationResult:
    """Error collection and formatting."""

    def test_format(self):
        """Errors render with type, location and fix."""
        result = ValidationResult()
        result.add_error(STRUCTURE, "class Foo", "Class Foo must be exported", "Export it")
        assert result.errors[0].format() == (
            "[FAIL] STRUCTURE: class Foo Class Foo must be exported\n  Fix: Export it"
        )

    def test_sorting(self):
        """Errors sort by type order, then line."""
        result = ValidationResult()
        result.add_error(BUBBLE, "FooBubble", "b", line_number=3)
        result.add_error(SYNTAX, "line 9", "s", line_number=9)
        result.add_error(SYNTAX, "line 2", "t", line_number=2)
        assert [e.problem for e in result.sorted_errors()] == ["t", "s", "b"]

    def test_to_dict(self):
        """Status reflects whether errors exist."""
        result = ValidationResult()
        result.add_warning(STRUCTURE, "x", "w")
        data = result.to_dict()
        assert data["status"] == "PASS"
        assert data["warning_count"] == 1
        result.add_error(STRUCTURE, "x", "e")
        assert result.to_dict()["status"] == "FAIL"

    @pytest.mark.parametrize("line,expected", [(4, "line 4: bad"), (None, "bad")])
    def test_syntax_message_prefix(self, line, expected):
        """Only syntax errors with a line get the prefix."""
        result = ValidationResult()
        result.add_error(SYNTAX, "script", "bad", line_number=line)
        assert result.messages() == [expected]
