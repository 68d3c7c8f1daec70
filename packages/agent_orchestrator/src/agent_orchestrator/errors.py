"""Error taxonomy for the orchestration core.

Errors are raised at API boundaries (bad settings, busy scheduler, a fired
cancellation token) and are converted into terminal result payloads inside
the scheduler and the sub-agent executor, so the model sees them as text.
"""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for orchestration errors."""


class ValidationError(OrchestratorError):
    """Parameters were malformed or out of range."""


class ApprovalDenied(OrchestratorError):
    """The user refused to run a tool call."""


class ExecutionError(OrchestratorError):
    """A tool body or sub-agent process failed."""


class SubAgentTimeoutError(ExecutionError):
    """A sub-agent exceeded its allotted time and was terminated."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Sub-agent timed out after {timeout:g} seconds and was terminated.")


class CancellationError(OrchestratorError):
    """Work was aborted through a cancellation token."""

    def __init__(self, reason: str = "Operation cancelled by user.") -> None:
        self.reason = reason
        super().__init__(reason)


class SchedulerBusyError(OrchestratorError):
    """A new batch was scheduled while another batch is still running."""
