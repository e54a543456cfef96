"""Tests for bubble dependency expansion.

Covers tool parsing, the flattened closure, the hierarchical graph with its
deterministic ids, and cycle safety.
"""

import logging

import pytest

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.parse.dependencies import (
    build_dependency_graph,
    find_dependencies,
    hash_unique_id_to_variable_id,
    parse_tool_names,
)
from flowscript.parse.script import FlowScript
from flowscript.parse.types import BubbleNodeType, BubbleParameter, BubbleParameterType


def _tools_param(text):
    return BubbleParameter(name="tools", value=text, type=BubbleParameterType.ARRAY)


class TestParseToolNames:
    """Tool names come from name keys of top-level array objects."""

    def test_single_tool(self):
        """A one-element array yields one name."""
        assert parse_tool_names("[{ name: 'web-search-tool' }]") == ["web-search-tool"]

    def test_multiple_tools_with_config(self):
        """Nested config objects do not contribute names."""
        text = """[
          { name: "web-search-tool", config: { name: 'ignored' } },
          { name: `web-scrape-tool` },
        ]"""
        assert parse_tool_names(text) == ["web-search-tool", "web-scrape-tool"]

    def test_non_literal_value(self):
        """Non-string values yield no tools."""
        assert parse_tool_names(None) == []
        assert parse_tool_names("toolList") == []


class TestFindDependencies:
    """Flattened breadth-first closure."""

    def test_agent_takes_configured_tools(self, registry):
        """An agent's dependencies come from its tools parameter."""
        params = [_tools_param("[{ name: 'web-search-tool' }]")]
        assert find_dependencies("ai-agent", params, registry) == ["web-search-tool"]

    def test_detailed_dependencies(self, registry):
        """Detailed specs contribute their names and agent tools."""
        assert find_dependencies("research-agent-tool", [], registry) == [
            "ai-agent", "web-search-tool", "web-scrape-tool",
        ]

    def test_transitive_closure(self, registry):
        """Dependencies of dependencies are included once."""
        deps = find_dependencies("slack-data-assistant", [], registry)
        assert deps == ["slack", "ai-agent", "sql-query-tool", "postgresql"]

    def test_excludes_root(self, cyclic_registry):
        """The bubble itself is never listed, even through a cycle."""
        params = [_tools_param("[{ name: 'research-tool' }]")]
        assert find_dependencies("ai-agent", params, cyclic_registry) == [
            "research-tool", "web-search-tool",
        ]

    def test_unknown_bubble(self, registry):
        """Unregistered names have no dependencies."""
        assert find_dependencies("not-a-bubble", [], registry) == []


class TestDependencyGraph:
    """Hierarchical dependency trees."""

    def test_root_uses_variable_id(self, registry):
        """With a variable id the root keeps it and prefixes child ids."""
        graph = build_dependency_graph("research-agent-tool", registry, variable_id=5)
        assert graph.unique_id == "5"
        assert graph.variable_id == 5
        (agent,) = graph.dependencies
        assert agent.unique_id == "5.ai-agent#1"
        assert [t.unique_id for t in agent.dependencies] == [
            "5.ai-agent#1.web-search-tool#1",
            "5.ai-agent#1.web-scrape-tool#1",
        ]

    def test_root_without_variable_id(self, registry):
        """Without a variable id the root id is hashed from name#1."""
        graph = build_dependency_graph("sql-query-tool", registry)
        assert graph.unique_id == "sql-query-tool#1"
        assert graph.variable_id == hash_unique_id_to_variable_id("sql-query-tool#1")
        assert graph.dependencies[0].unique_id == "sql-query-tool#1.postgresql#1"

    def test_named_instances_get_ordinals(self, registry):
        """Repeated children are numbered and carry instance names."""
        graph = build_dependency_graph("slack-data-assistant", registry, variable_id=7)
        slack_nodes = [d for d in graph.dependencies if d.name == "slack"]
        assert [n.unique_id for n in slack_nodes] == ["7.slack#1", "7.slack#2"]
        assert [n.variable_name for n in slack_nodes] == ["slackReader", "slackResponder"]

    def test_agent_tools_expand(self, registry):
        """Tools of an agent dependency expand their own dependencies."""
        graph = build_dependency_graph("slack-data-assistant", registry, variable_id=7)
        agent = next(d for d in graph.dependencies if d.name == "ai-agent")
        assert agent.variable_name == "queryAgent"
        (sql_tool,) = agent.dependencies
        assert sql_tool.unique_id == "7.ai-agent#1.sql-query-tool#1"
        assert sql_tool.node_type is BubbleNodeType.TOOL
        assert sql_tool.dependencies[0].unique_id == "7.ai-agent#1.sql-query-tool#1.postgresql#1"

    def test_cycle_terminates_with_nested_agent(self, cyclic_registry):
        """A tool that depends on the agent again keeps a nested agent node."""
        params = [_tools_param("[{ name: 'research-tool' }]")]
        graph = build_dependency_graph("ai-agent", cyclic_registry, parameters=params)
        (research,) = graph.dependencies
        assert research.name == "research-tool"
        (nested_agent,) = research.dependencies
        assert nested_agent.name == "ai-agent"
        assert [c.name for c in nested_agent.dependencies] == ["research-tool", "web-search-tool"]
        # research-tool is already on the path, so it stops there
        assert nested_agent.dependencies[0].dependencies == []

    def test_flat_fallback_logs_warning(self, caplog):
        """Without a detailed spec the flat list is used with a warning."""
        registry = BubbleRegistry.from_dict({
            "bubbles": [
                {"name": "outer", "class_name": "OuterBubble", "type": "workflow", "dependencies": ["inner"]},
                {"name": "inner", "class_name": "InnerBubble", "type": "service"},
            ]
        })
        with caplog.at_level(logging.WARNING, logger="flowscript.parse.dependencies"):
            graph = build_dependency_graph("outer", registry, variable_id=1)
        assert [d.unique_id for d in graph.dependencies] == ["1.inner#1"]
        assert graph.dependencies[0].variable_name is None
        assert "No detailed dependency spec" in caplog.text

    def test_graph_is_deterministic(self, report_flow):
        """Two parses give identical graphs."""
        first = {k: b.dependency_graph.to_dict() for k, b in FlowScript(report_flow).bubbles.items()}
        second = {k: b.dependency_graph.to_dict() for k, b in FlowScript(report_flow).bubbles.items()}
        assert first == second

    def test_located_bubbles_are_annotated(self, digest_flow):
        """Parsing fills dependencies and the graph on every bubble."""
        agent = FlowScript(digest_flow).bubbles[9]
        assert agent.dependencies == ["web-search-tool"]
        assert agent.dependency_graph.unique_id == "9"
        assert agent.dependency_graph.dependencies[0].unique_id == "9.web-search-tool#1"
        assert agent.dependency_graph.dependencies[0].variable_name == "web-search-tool"


class TestHashUniqueId:
    """FNV-1a based synthetic ids."""

    def test_known_value(self):
        """FNV-1a('a') is 0xE40C292C, folded into the id range."""
        assert hash_unique_id_to_variable_id("a") == 100000 + 0xE40C292C % 900000

    def test_range(self):
        """Ids fall in [100000, 1000000)."""
        for unique_id in ("a", "12.ai-agent#1", "x" * 200, "émoji-✓"):
            assert 100000 <= hash_unique_id_to_variable_id(unique_id) < 1000000

    def test_configurable_range(self, monkeypatch):
        """Base and range follow the environment overrides."""
        monkeypatch.setenv("FLOWSCRIPT_HASH_BASE", "10")
        monkeypatch.setenv("FLOWSCRIPT_HASH_RANGE", "5")
        assert 10 <= hash_unique_id_to_variable_id("12.ai-agent#1") < 15

    @pytest.mark.parametrize("unique_id", ["5.slack#1", "5.slack#2"])
    def test_stable(self, unique_id):
        """Hashing is a pure function of the id."""
        assert hash_unique_id_to_variable_id(unique_id) == hash_unique_id_to_variable_id(unique_id)
