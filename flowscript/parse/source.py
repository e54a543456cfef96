"""
source.py - tree-sitter front end for flow scripts.

Parses TypeScript source with the tree-sitter TypeScript grammar and maps
tree-sitter byte positions back to the line/character coordinates used by
the rest of the package.

Usage:
    from flowscript.parse.source import parse_source, syntax_errors

    tree, source = parse_source(text)
    for issue in syntax_errors(tree, source):
        print(issue.line, issue.message)
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import tree_sitter as ts
import tree_sitter_typescript as tst

from .exceptions import FlowSyntaxError
from .types import Location

logger = logging.getLogger(__name__)

_LANGUAGE: Optional[ts.Language] = None

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}

FUNCTION_NODE_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})


def get_language() -> ts.Language:
    """Load the TypeScript grammar once per process."""
    global _LANGUAGE
    if _LANGUAGE is None:
        _LANGUAGE = ts.Language(tst.language_typescript())
    return _LANGUAGE


class SourceText:
    """Source buffer with byte/character and line lookups."""

    def __init__(self, text: str):
        self.text = text
        self.data = text.encode("utf-8")
        self.lines = text.split("\n")
        self._line_offsets: List[int] = [0]
        for index, byte in enumerate(self.data):
            if byte == 0x0A:
                self._line_offsets.append(index + 1)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line(self, number: int) -> str:
        """Return a 1-based line, or an empty string when out of range."""
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1]
        return ""

    def node_text(self, node: Optional[ts.Node]) -> str:
        if node is None:
            return ""
        return self.data[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def _char_column(self, row: int, byte_column: int) -> int:
        if row >= len(self._line_offsets):
            return byte_column
        start = self._line_offsets[row]
        return len(self.data[start:start + byte_column].decode("utf-8", errors="replace"))

    def location(self, node: ts.Node) -> Location:
        start_row, start_col = node.start_point[0], node.start_point[1]
        end_row, end_col = node.end_point[0], node.end_point[1]
        return Location(
            start_line=start_row + 1,
            start_col=self._char_column(start_row, start_col),
            end_line=end_row + 1,
            end_col=self._char_column(end_row, end_col),
        )


def start_line(node: ts.Node) -> int:
    return node.start_point[0] + 1


def end_line(node: ts.Node) -> int:
    return node.end_point[0] + 1


def parse_source(text: str) -> Tuple[ts.Tree, SourceText]:
    """Parse source text into a tree-sitter tree."""
    source = SourceText(text)
    parser = ts.Parser(get_language())
    tree = parser.parse(source.data)
    logger.debug("Parsed %d lines (has_error=%s)", source.line_count, tree.root_node.has_error)
    return tree, source


# =============================================================================
# Syntax diagnostics
# =============================================================================


@dataclass(frozen=True)
class SyntaxIssue:
    line: int
    column: int
    message: str


def _iter_error_nodes(node: ts.Node) -> Iterator[ts.Node]:
    if node.type == "ERROR" or node.is_missing:
        yield node
        return
    for child in node.children:
        if child.has_error or child.is_missing:
            yield from _iter_error_nodes(child)


def syntax_errors(tree: ts.Tree, source: SourceText) -> List[SyntaxIssue]:
    """Collect one diagnostic per line from ERROR and MISSING nodes."""
    if not tree.root_node.has_error:
        return []
    issues: List[SyntaxIssue] = []
    seen_lines = set()
    for node in _iter_error_nodes(tree.root_node):
        line = start_line(node)
        if line in seen_lines:
            continue
        seen_lines.add(line)
        if node.is_missing:
            message = f"Missing '{node.type}'"
        else:
            snippet = source.node_text(node).strip().splitlines()
            token = snippet[0][:40] if snippet else ""
            message = f"Unexpected token '{token}'" if token else "Unexpected end of input"
        issues.append(SyntaxIssue(line=line, column=node.start_point[1], message=message))
    return issues


# =============================================================================
# Node helpers
# =============================================================================


def unwrap_parens(node: Optional[ts.Node]) -> Optional[ts.Node]:
    while node is not None and node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return node


def has_token(node: ts.Node, token: str) -> bool:
    """True when an anonymous child token (``async``, ``static``, ``?``...) is present."""
    return any(child.type == token for child in node.children)


def statements_of(block: Optional[ts.Node]) -> List[ts.Node]:
    """Statements of a statement_block or class body, skipping comments."""
    if block is None:
        return []
    return [child for child in block.named_children if child.type != "comment"]


def decode_string(node: ts.Node, source: SourceText) -> Optional[str]:
    """Cooked value of a string literal or a substitution-free template."""
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            return None
        raw = source.node_text(node)[1:-1]
        return _unescape(raw)
    if node.type != "string":
        return None
    parts: List[str] = []
    for child in node.named_children:
        if child.type == "string_fragment":
            parts.append(source.node_text(child))
        elif child.type == "escape_sequence":
            parts.append(_unescape(source.node_text(child)))
    return "".join(parts)


def _unescape(text: str) -> str:
    out: List[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == "\\" and index + 1 < len(text):
            nxt = text[index + 1]
            digits = text[index + 2:index + 6]
            if nxt == "u" and len(digits) == 4 and all(c in string.hexdigits for c in digits):
                out.append(chr(int(digits, 16)))
                index += 6
                continue
            out.append(_ESCAPES.get(nxt, nxt))
            index += 2
            continue
        out.append(char)
        index += 1
    return "".join(out)


def pattern_names(node: Optional[ts.Node], source: SourceText) -> List[Tuple[str, ts.Node]]:
    """Identifiers bound by a binding pattern, with their identifier nodes."""
    if node is None:
        return []
    kind = node.type
    if kind in ("identifier", "shorthand_property_identifier_pattern"):
        return [(source.node_text(node), node)]
    if kind == "object_pattern":
        names: List[Tuple[str, ts.Node]] = []
        for child in node.named_children:
            if child.type == "pair_pattern":
                names.extend(pattern_names(child.child_by_field_name("value"), source))
            elif child.type == "object_assignment_pattern":
                names.extend(pattern_names(child.child_by_field_name("left"), source))
            else:
                names.extend(pattern_names(child, source))
        return names
    if kind == "array_pattern":
        names = []
        for child in node.named_children:
            names.extend(pattern_names(child, source))
        return names
    if kind == "assignment_pattern":
        return pattern_names(node.child_by_field_name("left"), source)
    if kind == "rest_pattern":
        return [n for child in node.named_children for n in pattern_names(child, source)]
    return []


def function_parameters(func: ts.Node) -> List[ts.Node]:
    """Binding patterns of a function's formal parameters."""
    single = func.child_by_field_name("parameter")
    if single is not None:
        return [single]
    params = func.child_by_field_name("parameters")
    if params is None:
        return []
    patterns = []
    for param in params.named_children:
        if param.type in ("required_parameter", "optional_parameter"):
            pattern = param.child_by_field_name("pattern")
            if pattern is not None and pattern.type != "this":
                patterns.append(pattern)
        elif param.type in ("identifier", "object_pattern", "array_pattern", "assignment_pattern", "rest_pattern"):
            patterns.append(param)
    return patterns


def check_syntax(tree: ts.Tree, source: SourceText) -> None:
    """Raise FlowSyntaxError for the first syntax issue in a tree."""
    issues = syntax_errors(tree, source)
    if issues:
        first = issues[0]
        raise FlowSyntaxError(first.line, first.message, issues)
