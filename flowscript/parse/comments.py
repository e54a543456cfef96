"""
comments.py - Harvest descriptions from comments directly above a line.

A description is the run of comment lines immediately above a statement:
consecutive ``//`` lines, or a ``/* ... */`` / ``/** ... */`` block. A blank
line between the comment and the statement detaches it.
"""

from __future__ import annotations

import re
from typing import List, Optional

_BLOCK_OPEN_RE = re.compile(r"^/\*\*?\s*")
_BLOCK_CLOSE_RE = re.compile(r"\s*\*/\s*$")
_BLOCK_LINE_RE = re.compile(r"^\s*\*\s?")
_LINE_COMMENT_RE = re.compile(r"^//\s?")


def _is_block_line(line: str) -> bool:
    # Stripped lines only; code with a trailing block comment is not one
    return line.startswith(("/*", "*"))


def extract_comment_for_line(lines: List[str], line: int) -> Optional[str]:
    """Description from the comment run ending on ``line - 1``.

    Args:
        lines: Source lines (0-indexed list)
        line: 1-based line of the statement

    Returns:
        Comment text with markers stripped and lines joined by spaces,
        or None when no comment sits directly above.
    """
    collected: List[str] = []
    is_block = False
    current = line - 1
    while current >= 1:
        text = lines[current - 1].strip() if current - 1 < len(lines) else ""
        if not text:
            break
        if text.startswith("//"):
            if is_block:
                break
            collected.insert(0, text)
        elif _is_block_line(text):
            if collected and not is_block:
                break
            collected.insert(0, text)
            is_block = True
            if text.startswith("/*"):
                break
        else:
            break
        current -= 1

    if not collected:
        return None

    if is_block:
        body = "\n".join(collected)
        body = _BLOCK_OPEN_RE.sub("", body)
        body = _BLOCK_CLOSE_RE.sub("", body)
        parts = [_BLOCK_LINE_RE.sub("", part).strip() for part in body.split("\n")]
    else:
        parts = [_LINE_COMMENT_RE.sub("", part).strip() for part in collected]

    cleaned = " ".join(part for part in parts if part).strip()
    return cleaned or None
