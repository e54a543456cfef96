"""Tests for bubble location and instance method discovery."""

import pytest

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.parse.exceptions import BubbleExtractionError
from flowscript.parse.script import FlowScript
from flowscript.parse.types import BubbleNodeType


ANONYMOUS_SCRIPT = """import { HelloWorldBubble } from '@bubblelab/bubble-core';
const make = (name: string) => new HelloWorldBubble({ name });
function build() {
  return new HelloWorldBubble({ name: 'x' });
}
new HelloWorldBubble({ name: 'y' });
"""


class TestNamedBubbles:
    """Bubbles bound to a variable take the variable's scope id."""

    def test_bubble_ids(self, digest_flow):
        """Named bubbles use scope ids; anonymous ones get negative ids."""
        script = FlowScript(digest_flow)
        assert list(script.bubbles) == [9, -1]

    def test_named_bubble_fields(self, digest_flow):
        """Registry name, class name, node type and location are recorded."""
        agent = FlowScript(digest_flow).bubbles[9]
        assert agent.variable_name == "agent"
        assert agent.bubble_name == "ai-agent"
        assert agent.class_name == "AIAgentBubble"
        assert agent.node_type is BubbleNodeType.SERVICE
        assert agent.location.start_line == 14
        assert agent.location.end_line == 18
        assert agent.has_await is False
        assert agent.has_action_call is False

    def test_description_from_comment(self, digest_flow):
        """The comment directly above the declaration becomes the description."""
        agent = FlowScript(digest_flow).bubbles[9]
        assert agent.description == "Summarize the topic"

    def test_bubbles_in_helper_methods(self, report_flow):
        """Bubbles declared inside helper methods are located too."""
        bubbles = FlowScript(report_flow).bubbles
        assert bubbles[9].bubble_name == "postgresql"
        assert bubbles[9].variable_name == "db"


class TestAnonymousBubbles:
    """Unassigned instantiations get a negative synthetic id."""

    def test_awaited_action_call(self, digest_flow):
        """await new X({...}).action() sets both flags and id -1."""
        slack = FlowScript(digest_flow).bubbles[-1]
        assert slack.variable_name == "_anonymous_SlackBubble_1"
        assert slack.has_await is True
        assert slack.has_action_call is True
        assert slack.description is None

    def test_parameter_variable_ids(self, digest_flow):
        """Parameter references resolve against the enclosing scope."""
        slack = FlowScript(digest_flow).bubbles[-1]
        assert slack.get_parameter("channel").variable_id == 7
        assert slack.get_parameter("text").variable_id == 10
        assert slack.get_parameter("operation").value == "send_message"

    def test_anonymous_shapes(self):
        """Arrow bodies, return values and bare statements are all located."""
        bubbles = FlowScript(ANONYMOUS_SCRIPT).bubbles
        assert list(bubbles) == [-1, -2, -3]
        assert [b.variable_name for b in bubbles.values()] == [
            "_anonymous_HelloWorldBubble_0",
            "_anonymous_HelloWorldBubble_1",
            "_anonymous_HelloWorldBubble_2",
        ]
        assert [b.location.start_line for b in bubbles.values()] == [2, 4, 6]

    def test_arrow_parameter_resolves(self):
        """A shorthand property resolves to the arrow parameter."""
        bubbles = FlowScript(ANONYMOUS_SCRIPT).bubbles
        param = bubbles[-1].get_parameter("name")
        assert param.variable_id is not None

    def test_unknown_classes_are_ignored(self):
        """Constructors missing from the registry are ordinary code."""
        script = FlowScript("const e = new Error('x');\nnew Map();\n")
        assert script.bubbles == {}


class TestExtractionErrors:
    """Locator invariants are enforced with BubbleExtractionError."""

    def test_empty_registry(self, digest_flow):
        """An empty registry cannot locate anything."""
        with pytest.raises(BubbleExtractionError):
            FlowScript(digest_flow, BubbleRegistry())


class TestInstanceMethodLocations:
    """Instance methods of the flow class and their call sites."""

    def test_methods_are_listed(self, report_flow):
        """Every non-static method of the flow class is reported in order."""
        locations = FlowScript(report_flow).instance_method_locations
        assert list(locations) == ["loadRows", "notify", "handle"]

    def test_method_spans(self, report_flow):
        """Start, definition and body lines are recorded."""
        load_rows = FlowScript(report_flow).get_instance_method_location("loadRows")
        assert load_rows.start_line == 11
        assert load_rows.end_line == 14
        assert load_rows.definition_start_line == 11
        assert load_rows.body_start_line == 11

    def test_invocation_lines(self, report_flow):
        """this.<method>() call lines are sorted and de-duplicated."""
        script = FlowScript(report_flow)
        assert script.get_instance_method_location("loadRows").invocation_lines == [21, 34]
        assert script.get_instance_method_location("notify").invocation_lines == [26, 30, 35]

    def test_handle_location(self, report_flow):
        """handle is reported with no invocations."""
        handle = FlowScript(report_flow).handle_method_location
        assert (handle.start_line, handle.end_line) == (20, 45)
        assert handle.invocation_lines == []

    def test_no_flow_class(self):
        """Scripts without a BubbleFlow class have no methods."""
        assert FlowScript("const a = 1;\n").instance_method_locations == {}
