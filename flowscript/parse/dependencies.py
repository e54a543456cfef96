"""
dependencies.py - Expand a bubble's registry dependencies.

Two views are computed for every located bubble:

- a flat, breadth-first, de-duplicated list of every transitively reachable
  bubble name (used for credential rollups)
- a hierarchical DependencyGraphNode tree (used for visualization) whose
  node ids are deterministic hashes of their path

Agent bubbles contribute the tools configured in their own ``tools``
constructor parameter in addition to what the registry declares.

Usage:
    from flowscript.parse.dependencies import annotate_dependencies

    annotate_dependencies(bubbles, registry)
    bubbles[3].dependency_graph.to_dict()
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Dict, List, Optional, Sequence, Set

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.config.runtime_config import get_hash_base, get_hash_range

from .types import BubbleNodeType, BubbleParameter, DependencyGraphNode, ParsedBubble

logger = logging.getLogger(__name__)

TOOLS_PARAMETER = "tools"

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619

_TOOL_TOKEN_RE = re.compile(
    r"""(?P<str>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*"|`(?:\\.|[^`\\])*`)"""
    r"""|(?P<open>[\[{(])|(?P<close>[\]})])|(?P<sep>[,;])|(?P<key>\bname\s*:)"""
)


def hash_unique_id_to_variable_id(unique_id: str) -> int:
    """FNV-1a (32 bit, over UTF-16 code units) mapped into the synthetic id range."""
    value = _FNV_OFFSET
    encoded = unique_id.encode("utf-16-le")
    for index in range(0, len(encoded), 2):
        value ^= encoded[index] | (encoded[index + 1] << 8)
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return get_hash_base() + value % get_hash_range()


def parse_tool_names(value: object) -> List[str]:
    """Tool names from a ``tools`` array literal: ``[{ name: 'web-search-tool' }, ...]``.

    Only ``name`` keys of the top-level objects count; nested config objects
    are ignored. Non-literal values yield no tools.
    """
    if not isinstance(value, str):
        return []
    names: List[str] = []
    depth = 0
    expect_name = False
    for match in _TOOL_TOKEN_RE.finditer(value):
        if match.group("open"):
            depth += 1
            expect_name = False
        elif match.group("close"):
            depth -= 1
            expect_name = False
        elif match.group("sep"):
            expect_name = False
        elif match.group("key"):
            expect_name = depth == 2
        else:
            if expect_name:
                names.append(match.group("str")[1:-1])
            expect_name = False
    return names


def configured_tools(parameters: Sequence[BubbleParameter]) -> List[str]:
    for param in parameters:
        if param.name == TOOLS_PARAMETER:
            return parse_tool_names(param.value)
    return []


# =============================================================================
# Flat closure
# =============================================================================


def find_dependencies(
    bubble_name: str,
    parameters: Sequence[BubbleParameter],
    registry: BubbleRegistry,
) -> List[str]:
    """Breadth-first closure of a bubble's dependencies, excluding itself."""
    seen: Set[str] = {bubble_name}
    queue = deque([bubble_name])
    result: List[str] = []

    def enqueue(name: str) -> None:
        if name in seen:
            return
        seen.add(name)
        result.append(name)
        queue.append(name)

    while queue:
        name = queue.popleft()
        if registry.is_agent(name):
            for tool in configured_tools(parameters):
                enqueue(tool)

        definition = registry.get(name)
        if definition is None:
            continue
        if definition.detailed_dependencies:
            for spec in definition.detailed_dependencies:
                enqueue(spec.name)
                if registry.is_agent(spec.name) and spec.tools:
                    for tool in spec.tools:
                        enqueue(tool)
        else:
            for dep in definition.dependencies:
                enqueue(dep)
    return result


# =============================================================================
# Hierarchical graph
# =============================================================================


class DependencyGraphBuilder:
    """Builds one bubble's dependency tree.

    Ordinal counters are keyed by ``parentUniqueId|name`` and shared across
    the whole tree, so repeated children get ``#1``, ``#2``... suffixes.
    """

    def __init__(self, registry: BubbleRegistry):
        self.registry = registry
        self._ordinals: Dict[str, int] = {}

    def _next_ordinal(self, parent_unique_id: str, name: str) -> int:
        key = f"{parent_unique_id}|{name}"
        self._ordinals[key] = self._ordinals.get(key, 0) + 1
        return self._ordinals[key]

    def _node_type(self, name: str) -> BubbleNodeType:
        return BubbleNodeType.parse(self.registry.node_type(name))

    def build(
        self,
        name: str,
        seen: frozenset,
        tools: Optional[Sequence[str]] = None,
        parent_unique_id: str = "",
        explicit_variable_id: Optional[int] = None,
        suppress_self_segment: bool = False,
        variable_name: Optional[str] = None,
    ) -> DependencyGraphNode:
        ordinal = self._next_ordinal(parent_unique_id, name)
        if suppress_self_segment:
            unique_id = parent_unique_id
        elif parent_unique_id:
            unique_id = f"{parent_unique_id}.{name}#{ordinal}"
        else:
            unique_id = f"{name}#{ordinal}"
        variable_id = (
            explicit_variable_id
            if explicit_variable_id is not None
            else hash_unique_id_to_variable_id(unique_id)
        )
        node = DependencyGraphNode(
            name=name,
            unique_id=unique_id,
            variable_id=variable_id,
            node_type=self._node_type(name),
            variable_name=variable_name,
        )

        # Already on the current path: stop here
        if name in seen:
            return node
        next_seen = seen | {name}

        definition = self.registry.get(name)
        if definition is not None and definition.detailed_dependencies:
            for spec in definition.detailed_dependencies:
                child_tools = spec.tools if self.registry.is_agent(spec.name) else None
                instances = spec.instances or (None,)
                for instance in instances:
                    instance_name = instance.variable_name if instance is not None else None
                    if child_tools and spec.name in next_seen:
                        node.dependencies.append(
                            self._agent_tools_node(spec.name, child_tools, unique_id, next_seen, instance_name)
                        )
                        continue
                    node.dependencies.append(
                        self.build(
                            spec.name,
                            next_seen,
                            tools=child_tools,
                            parent_unique_id=unique_id,
                            variable_name=instance_name,
                        )
                    )
        elif definition is not None:
            for dep in definition.dependencies:
                logger.warning("No detailed dependency spec for '%s' under '%s'", dep, name)
                node.dependencies.append(self.build(dep, next_seen, parent_unique_id=unique_id))

        if self.registry.is_agent(name) and tools:
            for tool in tools:
                if tool in next_seen:
                    continue
                node.dependencies.append(
                    self.build(tool, next_seen, parent_unique_id=unique_id, variable_name=tool)
                )
        return node

    def _agent_tools_node(
        self,
        agent_name: str,
        tools: Sequence[str],
        parent_unique_id: str,
        seen: frozenset,
        variable_name: Optional[str],
    ) -> DependencyGraphNode:
        """Agent node that would close a cycle: keep its tools, skip re-expanding it."""
        ordinal = self._next_ordinal(parent_unique_id, agent_name)
        unique_id = f"{parent_unique_id}.{agent_name}#{ordinal}"
        node = DependencyGraphNode(
            name=agent_name,
            unique_id=unique_id,
            variable_id=hash_unique_id_to_variable_id(unique_id),
            node_type=self._node_type(agent_name),
            variable_name=variable_name,
        )
        for tool in tools:
            node.dependencies.append(
                self.build(tool, seen, parent_unique_id=unique_id, variable_name=tool)
            )
        return node


def build_dependency_graph(
    name: str,
    registry: BubbleRegistry,
    variable_id: Optional[int] = None,
    variable_name: Optional[str] = None,
    parameters: Sequence[BubbleParameter] = (),
) -> DependencyGraphNode:
    """Dependency tree for a bubble name.

    With ``variable_id`` the root reuses it (and it prefixes every unique
    id); without it the root id is hashed from ``name#1``.
    """
    builder = DependencyGraphBuilder(registry)
    tools = configured_tools(parameters) if registry.is_agent(name) else None
    if variable_id is None:
        return builder.build(name, frozenset(), tools=tools, variable_name=variable_name)
    return builder.build(
        name,
        frozenset(),
        tools=tools,
        parent_unique_id=str(variable_id),
        explicit_variable_id=variable_id,
        suppress_self_segment=True,
        variable_name=variable_name,
    )


def annotate_dependencies(bubbles: Dict[int, ParsedBubble], registry: BubbleRegistry) -> None:
    """Fill ``dependencies`` and ``dependency_graph`` on every located bubble."""
    for bubble in bubbles.values():
        bubble.dependencies = find_dependencies(bubble.bubble_name, bubble.parameters, registry)
        bubble.dependency_graph = build_dependency_graph(
            bubble.bubble_name,
            registry,
            variable_id=bubble.variable_id,
            variable_name=bubble.variable_name,
            parameters=bubble.parameters,
        )
