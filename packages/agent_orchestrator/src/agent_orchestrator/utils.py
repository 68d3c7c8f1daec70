"""Shared helpers for the orchestration core."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic import ValidationError as PydanticValidationError

_ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """Return current UTC timestamp in ISO format."""
    return utc_now().isoformat()


def preview(text: str, max_chars: int, suffix: str = "...") -> str:
    """Return ``text`` cut to ``max_chars`` with a suffix when it was longer."""
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}{suffix}"


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences from process output."""
    return _ANSI_ESCAPE.sub("", text)


def seconds_between(start: datetime | None, end: datetime | None) -> float:
    """Elapsed seconds between two timestamps, 0.0 when either is missing."""
    if start is None or end is None:
        return 0.0
    return max((end - start).total_seconds(), 0.0)


def describe_validation_error(exc: PydanticValidationError) -> str:
    """Flatten a pydantic error into one line, naming subtasks by position."""
    messages: list[str] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        message = str(error.get("msg", "")).removeprefix("Value error, ")
        if len(loc) >= 2 and loc[0] == "subtasks" and isinstance(loc[1], int):
            label = f"Subtask {loc[1] + 1}"
            if len(loc) > 2:
                label = f"{label} {loc[2]}"
            messages.append(f"{label}: {message}")
        elif loc:
            messages.append(f"{'.'.join(str(part) for part in loc)}: {message}")
        else:
            messages.append(message)
    return "; ".join(messages)
