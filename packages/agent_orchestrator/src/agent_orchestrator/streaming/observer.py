"""Presentation-layer subscription for turn progress."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from agent_orchestrator.scheduler.models import ToolCallBatch, TrackedToolCall

NoticeLevel = Literal["info", "error"]


class TurnObserver:
    """Receives content chunks, tool status changes, and notices.

    Every hook is a no-op; presentation layers override the ones they render.
    Observers only read what they are given.
    """

    def on_content(self, text: str, *, final: bool) -> None:
        """``final`` chunks will not change again; the other one is the pending tail."""

    def on_thought(self, text: str) -> None:
        pass

    def on_tool_calls_updated(self, calls: list[TrackedToolCall]) -> None:
        pass

    def on_batch_complete(self, batch: ToolCallBatch) -> None:
        pass

    def on_notice(self, level: NoticeLevel, text: str) -> None:
        pass

    def on_usage(self, usage: dict[str, Any]) -> None:
        pass

    def on_chat_compressed(self, info: dict[str, Any]) -> None:
        pass
