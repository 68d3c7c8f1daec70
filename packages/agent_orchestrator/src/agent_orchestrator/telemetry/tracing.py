"""OpenTelemetry span helpers.

Spans are opened through the OpenTelemetry API only; without an SDK
configured by the host application they are no-ops.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace as otel_trace
from opentelemetry.trace import Status, StatusCode, format_trace_id

if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Span

logger = logging.getLogger(__name__)

TRACER_NAME = "agent_orchestrator"


@contextmanager
def span(name: str, **attributes: Any) -> Iterator[Span]:
    """Open a span named ``name`` and record failures on it."""
    tracer = otel_trace.get_tracer(TRACER_NAME)
    clean = {key: value for key, value in attributes.items() if value is not None}
    with tracer.start_as_current_span(name, attributes=clean) as current:
        try:
            yield current
        except Exception as exc:
            current.set_status(Status(StatusCode.ERROR, str(exc)))
            current.record_exception(exc)
            raise


def get_current_trace_id() -> str | None:
    """Get the current OpenTelemetry trace ID if available."""
    ctx = otel_trace.get_current_span().get_span_context()
    if ctx.trace_id == 0:
        return None
    return format_trace_id(ctx.trace_id)
