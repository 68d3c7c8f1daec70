"""Markdown-aware splitting of long streamed content."""

from __future__ import annotations

import re

_FENCE = re.compile(r"^ {0,3}(?:```|~~~)", re.MULTILINE)


def _inside_code_block(text: str, index: int) -> bool:
    return len(_FENCE.findall(text, 0, index)) % 2 == 1


def find_last_safe_split_point(text: str) -> int:
    """Index just after the last blank line outside a fenced code block.

    Returns ``len(text)`` when there is no such boundary.
    """
    search_end = len(text)
    while search_end > 0:
        index = text.rfind("\n\n", 0, search_end)
        if index == -1:
            break
        if not _inside_code_block(text, index):
            return index + 2
        search_end = index
    return len(text)


def split_content(buffer: str, threshold: int) -> tuple[str, str]:
    """Split ``buffer`` into (finalized, pending) once it exceeds ``threshold``.

    The finalized part is empty when the buffer is short or has no safe boundary.
    """
    if len(buffer) <= threshold:
        return "", buffer
    split_at = find_last_safe_split_point(buffer)
    if split_at <= 0 or split_at >= len(buffer):
        return "", buffer
    return buffer[:split_at], buffer[split_at:]
