"""
script.py - FlowScript, the analysis entry point for one flow script.

A FlowScript parses its text once and exposes everything the execution and
UI layers ask about: the located bubbles with their dependency graphs, the
workflow tree, the trigger, the payload schema, and line-based scope
queries. Mutations only rewrite the text and mark the analysis stale;
reparse() re-runs it. Ids are deterministic, so an unchanged script
re-parses to identical results.

Usage:
    from flowscript.parse.script import FlowScript

    script = FlowScript(text)
    for bubble in script.bubbles.values():
        print(bubble.variable_id, bubble.bubble_name)

    script.reassign_variable(3, "'gpt-4o'")
    script.inject_lines(["console.log('start');"], 12)
    script.reparse()
    script.reset()
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

from flowscript.config.bubble_registry import BubbleRegistry

from .dependencies import annotate_dependencies
from .exceptions import MutationError
from .flow_class import HANDLE_METHOD
from .locator import BubbleLocator
from .schema import infer_payload_schema
from .scope import ScopeInfo, Variable, build_scopes
from .source import check_syntax, parse_source
from .trigger import DEFAULT_TRIGGER, detect_trigger
from .types import BubbleTrigger, InstanceMethodLocation, Location, ParsedBubble, ParsedWorkflow
from .workflow import WorkflowBuilder

logger = logging.getLogger(__name__)


class FlowScript:
    """Parsed view of a flow script plus a mutable text buffer.

    Attributes:
        registry: Bubble registry used to recognize constructors
        tree: tree-sitter tree of the current text
        source_text: SourceText of the current text
        scopes: ScopeManager of the current text
    """

    def __init__(self, source: str, registry: Optional[BubbleRegistry] = None):
        self.registry = registry if registry is not None else BubbleRegistry.get_instance()
        self._original_source = source
        self._source = source
        self._original_bubbles: Optional[Dict[int, ParsedBubble]] = None
        self.reparse()
        self._original_bubbles = self._bubbles

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def reparse(self) -> None:
        """Re-run the full analysis over the current text.

        On failure the previous analysis is kept and the script stays stale.

        Raises:
            FlowSyntaxError: The text does not parse
            BubbleExtractionError: A named bubble has no scope variable
        """
        started = time.perf_counter()
        tree, source_text = parse_source(self._source)
        check_syntax(tree, source_text)
        scopes = build_scopes(tree, source_text)

        locator = BubbleLocator(tree, source_text, scopes, self.registry)
        bubbles = locator.locate()
        annotate_dependencies(bubbles, self.registry)

        self.tree, self.source_text, self.scopes = tree, source_text, scopes
        self._bubbles = bubbles
        self._instance_methods = locator.instance_method_locations()
        self._workflow: Optional[ParsedWorkflow] = None
        self._detected_trigger = detect_trigger(tree, source_text)
        self._payload_schema = infer_payload_schema(tree, source_text)
        self._stale = False
        logger.debug(
            "Analyzed flow script: %d bubbles, %d variables in %.1fms",
            len(bubbles),
            len(scopes.all_variables()),
            (time.perf_counter() - started) * 1000,
        )

    @property
    def is_stale(self) -> bool:
        """True after a mutation until the next successful reparse()."""
        return self._stale

    def reset(self) -> str:
        """Restore the text the script was created with."""
        self._source = self._original_source
        self.reparse()
        return self._source

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @property
    def source(self) -> str:
        """Current text, including applied mutations."""
        return self._source

    @property
    def original_source(self) -> str:
        return self._original_source

    @property
    def bubbles(self) -> Dict[int, ParsedBubble]:
        return self._bubbles

    @property
    def original_bubbles(self) -> Dict[int, ParsedBubble]:
        """Bubbles of the text the script was created with."""
        return self._original_bubbles if self._original_bubbles is not None else self._bubbles

    @property
    def workflow(self) -> ParsedWorkflow:
        if self._workflow is None:
            self._workflow = WorkflowBuilder(self.tree, self.source_text, self._bubbles, self.scopes).build()
        return self._workflow

    @property
    def detected_trigger(self) -> Optional[BubbleTrigger]:
        """Trigger declared in source, or None when the flow declares none."""
        return self._detected_trigger

    @property
    def trigger(self) -> BubbleTrigger:
        """Declared trigger, falling back to an HTTP webhook."""
        return self._detected_trigger or BubbleTrigger(type=DEFAULT_TRIGGER)

    @property
    def payload_schema(self) -> Optional[Dict[str, Any]]:
        return self._payload_schema

    @property
    def instance_method_locations(self) -> Dict[str, InstanceMethodLocation]:
        return self._instance_methods

    @property
    def handle_method_location(self) -> Optional[InstanceMethodLocation]:
        return self._instance_methods.get(HANDLE_METHOD)

    def get_instance_method_location(self, method_name: str) -> Optional[InstanceMethodLocation]:
        return self._instance_methods.get(method_name)

    # -------------------------------------------------------------------------
    # Scope queries
    # -------------------------------------------------------------------------

    def get_vars_for_line(self, line: int) -> List[Variable]:
        """User variables visible at a 1-based line."""
        return self.scopes.variables_visible_at(line)

    def get_scope_info_for_line(self, line: int) -> Optional[ScopeInfo]:
        return self.scopes.scope_info_at(line)

    def get_variable(self, variable_id: int) -> Optional[Variable]:
        return self.scopes.get_variable(variable_id)

    def get_variable_location(self, variable_id: int) -> Optional[Location]:
        return self.scopes.variable_location(variable_id)

    def get_all_user_variables(self) -> List[str]:
        return [v.name for v in self.scopes.all_user_variables()]

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def reassign_variable(self, variable_id: int, new_value: str) -> str:
        """Replace the initializer of a variable on its declaration line.

        Ids and lines come from the last parse. The new text is kept as-is;
        call reparse() before querying the analysis again.

        Raises:
            MutationError: Unknown id, or no assignment on the declaration line
        """
        variable = self.scopes.get_variable(variable_id)
        if variable is None:
            raise MutationError(f"Variable with ID {variable_id} not found")

        lines = self._source.split("\n")
        index = variable.declaration_line - 1
        original = lines[index] if 0 <= index < len(lines) else ""
        name = re.escape(variable.name)

        patterns = (
            re.compile(rf"(\b(?:const|let|var)\s+{name}\s*=\s*)([^;,\n]+)"),
            re.compile(rf"(\b{name}\s*=\s*)([^;,\n]+)"),
        )
        for pattern in patterns:
            if pattern.search(original):
                lines[index] = pattern.sub(lambda m: m.group(1) + new_value, original, count=1)
                break
        else:
            raise MutationError(
                f"Could not find variable assignment pattern for {variable.name} "
                f"on line {variable.declaration_line}"
            )

        self._apply("\n".join(lines))
        logger.debug("Reassigned %s (id %d)", variable.name, variable_id)
        return self._source

    def inject_lines(self, lines: List[str], line_number: int) -> str:
        """Insert lines so the first one lands on ``line_number`` (1-based).

        The inserted text need not parse on its own; call reparse() before
        querying the analysis again.

        Raises:
            MutationError: Line number below 1 or past the end of the script
        """
        if line_number < 1:
            raise MutationError("Line number must be 1 or greater")
        script_lines = self._source.split("\n")
        index = line_number - 1
        if index > len(script_lines):
            raise MutationError(
                f"Line number {line_number} exceeds script length ({len(script_lines)} lines)"
            )
        script_lines[index:index] = list(lines)
        self._apply("\n".join(script_lines))
        return self._source

    def _apply(self, text: str) -> None:
        self._source = text
        self._stale = True

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self._source,
            "bubbles": {str(k): b.to_dict() for k, b in self._bubbles.items()},
            "workflow": self.workflow.to_dict(),
            "trigger": self.trigger.to_dict(),
            "payloadSchema": self._payload_schema,
            "instanceMethodsLocation": {
                name: loc.to_dict() for name, loc in self._instance_methods.items()
            },
        }
