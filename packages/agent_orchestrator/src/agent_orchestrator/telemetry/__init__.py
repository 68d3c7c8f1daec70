"""Telemetry package: trace spans and trace-aware logging."""

from agent_orchestrator.telemetry.logging_utils import (
    TraceContextFilter,
    configure_logging,
    install_trace_log_filter,
)
from agent_orchestrator.telemetry.tracing import get_current_trace_id, span

__all__ = [
    "TraceContextFilter",
    "configure_logging",
    "get_current_trace_id",
    "install_trace_log_filter",
    "span",
]
