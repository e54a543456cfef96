"""
trigger_registry.py - Load trigger event types from triggers.yaml

Usage:
    from flowscript.config.trigger_registry import get_trigger_payload_schema, is_known_trigger

    schema = get_trigger_payload_schema("slack/bot_mentioned")
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_FILE = Path(__file__).parent / "triggers.yaml"


@dataclass(frozen=True)
class TriggerDefinition:
    key: str
    description: str = ""
    requires_cron_schedule: bool = False
    payload_schema: Dict[str, Any] = field(default_factory=dict, hash=False)


class TriggerRegistry:
    """Registry of trigger event types."""

    _instance: Optional["TriggerRegistry"] = None

    def __init__(self, config_path: Path = _CONFIG_FILE):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._triggers: Dict[str, TriggerDefinition] = {}
        for key, entry in (data.get("triggers") or {}).items():
            entry = entry or {}
            self._triggers[key] = TriggerDefinition(
                key=key,
                description=entry.get("description", ""),
                requires_cron_schedule=bool(entry.get("requires_cron_schedule", False)),
                payload_schema=entry.get("payload_schema") or {},
            )

    @classmethod
    def get_instance(cls) -> "TriggerRegistry":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset singleton (for testing)."""
        cls._instance = None

    def get(self, key: str) -> Optional[TriggerDefinition]:
        return self._triggers.get(key)

    def keys(self) -> List[str]:
        return list(self._triggers)


# Module-level convenience functions
def list_trigger_types() -> List[str]:
    return TriggerRegistry.get_instance().keys()


def is_known_trigger(key: str) -> bool:
    return TriggerRegistry.get_instance().get(key) is not None


def get_trigger_payload_schema(key: str) -> Optional[Dict[str, Any]]:
    """Copy of the payload schema for a trigger event key, or None if unknown."""
    definition = TriggerRegistry.get_instance().get(key)
    if definition is None:
        logger.debug("No payload schema for trigger '%s'", key)
        return None
    return copy.deepcopy(definition.payload_schema)
