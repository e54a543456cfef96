"""
bubble_registry.py - Load the bubble capability registry from bubbles.yaml

This module is the single source of truth for which bubble classes a flow
script may instantiate and what each bubble depends on. The registry is
loaded once and never mutated afterwards, so one instance can be shared by
any number of parsers.

Usage:
    from flowscript.config.bubble_registry import BubbleRegistry, get_bubble

    registry = BubbleRegistry.get_instance()
    definition = registry.by_class_name("AIAgentBubble")
    get_bubble("ai-agent").credentials

    # In-memory registries for tests or embedding
    registry = BubbleRegistry.from_dict({"bubbles": [...]})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

_CONFIG_FILE = Path(__file__).parent / "bubbles.yaml"

_NODE_TYPES = ("service", "tool", "workflow")


@dataclass(frozen=True)
class BubbleInstance:
    """A named instance of a dependency inside a composite bubble."""
    variable_name: Optional[str] = None


@dataclass(frozen=True)
class DetailedDependency:
    """One entry of a bubble's detailed dependency spec.

    Attributes:
        name: Registry key of the dependency
        tools: Tools configured on the dependency (agent dependencies only)
        instances: Named instances; an empty tuple means one unnamed instance
    """
    name: str
    tools: Optional[Tuple[str, ...]] = None
    instances: Tuple[BubbleInstance, ...] = ()


@dataclass(frozen=True)
class BubbleDefinition:
    """Capability descriptor for one registered bubble.

    Attributes:
        name: Registry key (e.g., "ai-agent")
        class_name: Class identifier used in flow scripts
        node_type: "service" | "tool" | "workflow" | "unknown"
        description: Short human description
        parameters: Constructor parameter names (parameter shape)
        dependencies: Flat list of dependency names
        detailed_dependencies: Dependency tree spec for visualization
        credentials: Credential types the bubble requires
        is_agent: Agent bubbles take their tools from the ``tools`` parameter
    """
    name: str
    class_name: str
    node_type: str = "unknown"
    description: str = ""
    parameters: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()
    detailed_dependencies: Tuple[DetailedDependency, ...] = ()
    credentials: Tuple[str, ...] = ()
    is_agent: bool = False


def _detailed_from_dict(data: Dict[str, Any]) -> DetailedDependency:
    tools = data.get("tools")
    return DetailedDependency(
        name=data["name"],
        tools=tuple(tools) if tools is not None else None,
        instances=tuple(
            BubbleInstance(variable_name=inst.get("variable_name"))
            for inst in data.get("instances") or []
        ),
    )


def bubble_definition_from_dict(data: Dict[str, Any]) -> BubbleDefinition:
    """Build a BubbleDefinition from a registry entry."""
    if "name" not in data or "class_name" not in data:
        raise ValueError(f"Bubble registry entry needs 'name' and 'class_name': {data!r}")
    node_type = data.get("type", "unknown")
    if node_type not in _NODE_TYPES:
        logger.warning("Bubble '%s' has unknown type '%s'", data["name"], node_type)
        node_type = "unknown"
    return BubbleDefinition(
        name=data["name"],
        class_name=data["class_name"],
        node_type=node_type,
        description=data.get("description", ""),
        parameters=tuple(data.get("parameters") or ()),
        dependencies=tuple(data.get("dependencies") or ()),
        detailed_dependencies=tuple(
            _detailed_from_dict(d) for d in data.get("detailed_dependencies") or []
        ),
        credentials=tuple(data.get("credentials") or ()),
        is_agent=bool(data.get("agent", False)),
    )


class BubbleRegistry:
    """Name-keyed table of bubble capability descriptors."""

    _instance: Optional["BubbleRegistry"] = None

    def __init__(self, definitions: Iterable[BubbleDefinition] = ()):
        self._by_name: Dict[str, BubbleDefinition] = {}
        self._by_class: Dict[str, BubbleDefinition] = {}
        for definition in definitions:
            if definition.name in self._by_name:
                raise ValueError(f"Duplicate bubble name in registry: {definition.name}")
            self._by_name[definition.name] = definition
            self._by_class[definition.class_name] = definition

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BubbleRegistry":
        return cls(bubble_definition_from_dict(entry) for entry in data.get("bubbles") or [])

    @classmethod
    def from_yaml(cls, config_path: Path = _CONFIG_FILE) -> "BubbleRegistry":
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        registry = cls.from_dict(data)
        logger.debug("Loaded %d bubbles from %s", len(registry), config_path)
        return registry

    @classmethod
    def get_instance(cls) -> "BubbleRegistry":
        """Get singleton instance loaded from bubbles.yaml."""
        if cls._instance is None:
            cls._instance = cls.from_yaml()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset singleton (for testing)."""
        cls._instance = None

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def is_empty(self) -> bool:
        return not self._by_name

    def get(self, name: str) -> Optional[BubbleDefinition]:
        return self._by_name.get(name)

    def by_class_name(self, class_name: str) -> Optional[BubbleDefinition]:
        return self._by_class.get(class_name)

    def names(self) -> List[str]:
        return list(self._by_name)

    def class_names(self) -> List[str]:
        return list(self._by_class)

    def node_type(self, name: str) -> str:
        definition = self._by_name.get(name)
        return definition.node_type if definition else "unknown"

    def is_agent(self, name: str) -> bool:
        definition = self._by_name.get(name)
        return bool(definition and definition.is_agent)

    def credentials_for(self, name: str) -> Tuple[str, ...]:
        definition = self._by_name.get(name)
        return definition.credentials if definition else ()


# Module-level convenience functions
def get_bubble(name: str) -> Optional[BubbleDefinition]:
    """Get a bubble definition from the default registry."""
    return BubbleRegistry.get_instance().get(name)


def get_bubble_by_class(class_name: str) -> Optional[BubbleDefinition]:
    """Get a bubble definition by its source class name."""
    return BubbleRegistry.get_instance().by_class_name(class_name)


def list_bubble_names() -> List[str]:
    """Get all registered bubble names in registry order."""
    return BubbleRegistry.get_instance().names()
