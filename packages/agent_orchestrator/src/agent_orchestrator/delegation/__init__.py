"""Task delegation: request models, aggregated reports, and the delegator."""

from agent_orchestrator.delegation.delegator import TaskDelegator, make_executor_factory
from agent_orchestrator.delegation.models import (
    AggregatedReport,
    DelegationRequest,
    ReportEntry,
    SubtaskSpec,
)

__all__ = [
    "AggregatedReport",
    "DelegationRequest",
    "ReportEntry",
    "SubtaskSpec",
    "TaskDelegator",
    "make_executor_factory",
]
