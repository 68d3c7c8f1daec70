"""Model stream events, content splitting, and the turn coordinator."""

from agent_orchestrator.streaming.coordinator import (
    USER_CANCELLED_MESSAGE,
    StreamCoordinator,
    TurnResult,
)
from agent_orchestrator.streaming.events import (
    ConversationState,
    ModelBackend,
    StreamEvent,
    TurnOutcome,
)
from agent_orchestrator.streaming.observer import TurnObserver
from agent_orchestrator.streaming.splitting import find_last_safe_split_point, split_content

__all__ = [
    "USER_CANCELLED_MESSAGE",
    "ConversationState",
    "ModelBackend",
    "StreamCoordinator",
    "StreamEvent",
    "TurnObserver",
    "TurnOutcome",
    "TurnResult",
    "find_last_safe_split_point",
    "split_content",
]
