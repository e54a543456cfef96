"""Tests for FlowScript mutation and line queries."""

import pytest

from flowscript.parse.exceptions import FlowSyntaxError, MutationError
from flowscript.parse.script import FlowScript

MULTILINE_FLOW = """import { BubbleFlow, HelloWorldBubble } from '@bubblelab/bubble-core';

export class MultiFlow extends BubbleFlow<'webhook/http'> {
  async handle(payload: { name: string }) {
    const greeting = 'hello';
    const bubble = new HelloWorldBubble({
      name: payload.name,
      message: greeting,
    });
    return await bubble.action();
  }
}
"""


class TestReassignVariable:
    """Initializer rewrites on the declaration line."""

    def test_reassign_const(self, hello_flow):
        """The initializer is replaced and the rest of the line kept."""
        script = FlowScript(hello_flow)
        updated = script.reassign_variable(5, "'hi'")
        assert updated.split("\n")[4] == "    const greeting = 'hi';"
        assert script.source == updated

    def test_reassign_let(self, hello_flow):
        """let declarations are rewritten the same way."""
        script = FlowScript(hello_flow)
        script.reassign_variable(6, "41 + 1")
        assert script.source.split("\n")[5] == "    let count = 41 + 1;"

    def test_reparse_after_reassign(self, hello_flow):
        """Ids are unchanged and the bubble parameter still resolves."""
        script = FlowScript(hello_flow)
        script.reassign_variable(5, "'hi'")
        script.reparse()
        assert list(script.bubbles) == [7]
        assert script.bubbles[7].get_parameter("message").variable_id == 5

    def test_unknown_id(self, hello_flow):
        """Unknown ids raise MutationError."""
        script = FlowScript(hello_flow)
        with pytest.raises(MutationError, match="Variable with ID 999 not found"):
            script.reassign_variable(999, "1")

    def test_parameter_has_no_assignment(self, hello_flow):
        """Parameters have no initializer to replace."""
        script = FlowScript(hello_flow)
        with pytest.raises(ValueError) as exc_info:
            script.reassign_variable(4, "{}")
        assert str(exc_info.value) == (
            "Could not find variable assignment pattern for payload on line 4"
        )
        assert script.source == hello_flow


class TestInjectLines:
    """Line insertion."""

    def test_inject_before_line(self, hello_flow):
        """The first injected line lands on the requested line number."""
        script = FlowScript(hello_flow)
        script.inject_lines(["    let z = 2;"], 8)
        lines = script.source.split("\n")
        assert lines[7] == "    let z = 2;"
        assert lines[8] == "    return await bubble.action();"
        assert list(script.bubbles) == [7]

    def test_inject_shifts_locations(self, hello_flow):
        """Locations after the insertion point move down."""
        script = FlowScript(hello_flow)
        script.inject_lines(["    // one", "    // two"], 5)
        script.reparse()
        assert script.bubbles[7].location.start_line == 9

    def test_line_zero(self, hello_flow):
        """Line numbers are 1-based."""
        with pytest.raises(MutationError, match="1 or greater"):
            FlowScript(hello_flow).inject_lines(["x;"], 0)

    def test_past_end(self, hello_flow):
        """Line numbers past the end are rejected."""
        with pytest.raises(MutationError, match="exceeds script length"):
            FlowScript(hello_flow).inject_lines(["x;"], 50)

    def test_injection_is_kept_until_reparse(self, hello_flow):
        """Text that breaks parsing is kept; reparse() reports it."""
        script = FlowScript(hello_flow)
        updated = script.inject_lines(["    const = ;"], 5)
        assert updated.split("\n")[4] == "    const = ;"
        assert script.is_stale
        with pytest.raises(FlowSyntaxError):
            script.reparse()
        assert script.is_stale
        assert script.source == updated
        assert script.bubbles[7].location.start_line == 7

    def test_inject_inside_object_literal(self):
        """Lines may land inside an object literal without raising."""
        script = FlowScript(MULTILINE_FLOW)
        updated = script.inject_lines(["      let z = 2;"], 9)
        assert updated.split("\n")[8] == "      let z = 2;"
        assert script.is_stale
        assert list(script.bubbles) == [6]
        with pytest.raises(FlowSyntaxError):
            script.reparse()

    def test_inject_inside_class_body(self, hello_flow):
        """A class field injected above a method re-parses cleanly."""
        script = FlowScript(hello_flow)
        script.inject_lines(["  private limit = 3;"], 4)
        assert script.is_stale
        script.reparse()
        assert not script.is_stale
        assert list(script.bubbles) == [7]
        assert script.bubbles[7].location.start_line == 8


class TestReset:
    """Restoring the original text."""

    def test_reset_restores_source(self, hello_flow):
        """reset() undoes every mutation."""
        script = FlowScript(hello_flow)
        script.reassign_variable(5, "'hi'")
        script.inject_lines(["    let z = 2;"], 8)
        assert script.reset() == hello_flow
        assert script.source == hello_flow
        assert script.original_source == hello_flow

    def test_original_bubbles_survive_mutation(self, hello_flow):
        """original_bubbles keeps the first parse."""
        script = FlowScript(hello_flow)
        script.inject_lines(["    // moved"], 5)
        script.reparse()
        assert script.original_bubbles[7].location.start_line == 7
        assert script.bubbles[7].location.start_line == 8


class TestLineQueries:
    """Variables and locations by line."""

    def test_vars_for_line(self, hello_flow):
        """Only variables declared at or before the line are visible."""
        script = FlowScript(hello_flow)
        at_bubble = {v.name for v in script.get_vars_for_line(7)}
        assert {"payload", "greeting", "count", "bubble"} <= at_bubble
        at_greeting = {v.name for v in script.get_vars_for_line(5)}
        assert "greeting" in at_greeting
        assert "count" not in at_greeting

    def test_variable_location(self, hello_flow):
        """Locations point at the declarator."""
        location = FlowScript(hello_flow).get_variable_location(5)
        assert location.start_line == 5
        assert location.start_col == 10
        assert FlowScript(hello_flow).get_variable_location(999) is None

    def test_all_user_variables(self, hello_flow):
        """User variables include locals and exclude built-ins."""
        names = FlowScript(hello_flow).get_all_user_variables()
        assert {"payload", "greeting", "count", "bubble"} <= set(names)
        assert "console" not in names


class TestSerialization:
    """The full analysis as a dict."""

    def test_to_dict_keys(self, hello_flow):
        """Every analysis result is present."""
        data = FlowScript(hello_flow).to_dict()
        assert set(data) == {
            "source", "bubbles", "workflow", "trigger", "payloadSchema", "instanceMethodsLocation",
        }
        assert list(data["bubbles"]) == ["7"]
        assert data["trigger"] == {"type": "webhook/http"}

    def test_deterministic(self, report_flow):
        """Parsing the same text twice gives identical results."""
        assert FlowScript(report_flow).to_dict() == FlowScript(report_flow).to_dict()
