"""Tool that combines results from several sub-agents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from agent_orchestrator.aggregation import MAX_RESULTS, AggregationRequest, aggregate
from agent_orchestrator.errors import ValidationError
from agent_orchestrator.tools.base import Tool, ToolResult
from agent_orchestrator.tools.registry import ToolDefinition
from agent_orchestrator.utils import describe_validation_error

if TYPE_CHECKING:
    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.tools.base import ProgressCallback

AGGREGATE_RESULTS = "aggregate_results"


class AggregateResultsTool(Tool):
    definition = ToolDefinition(
        name=AGGREGATE_RESULTS,
        description=(
            "Combine, compare, or analyze results from multiple agents or operations "
            "into a single document."
        ),
        category="agents",
        tags=("aggregation", "orchestration"),
        input_schema={
            "type": "object",
            "properties": {
                "results": {
                    "type": "array",
                    "minItems": 1,
                    "maxItems": MAX_RESULTS,
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "content": {"type": "string"},
                            "metadata": {"type": "object"},
                        },
                        "required": ["name", "content"],
                    },
                },
                "aggregationType": {
                    "type": "string",
                    "enum": ["summary", "merge", "compare", "analyze", "custom"],
                    "default": "summary",
                },
                "title": {"type": "string"},
                "format": {
                    "type": "string",
                    "enum": ["markdown", "text", "json", "report"],
                    "default": "markdown",
                },
                "includeMetadata": {"type": "boolean", "default": False},
                "customInstructions": {"type": "string"},
                "groupBy": {"type": "string"},
                "sortBy": {
                    "type": "string",
                    "enum": ["name", "length", "timestamp", "none"],
                    "default": "name",
                },
            },
            "required": ["results"],
        },
        capabilities=("summarize",),
    )

    def parse(self, args: dict[str, Any]) -> AggregationRequest:
        try:
            return AggregationRequest.model_validate(args)
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc

    def validate(self, args: dict[str, Any]) -> str | None:
        try:
            self.parse(args)
        except ValidationError as exc:
            return str(exc)
        return None

    def describe(self, args: dict[str, Any]) -> str:
        results = args.get("results") or []
        kind = args.get("aggregationType", "summary")
        output_format = args.get("format", "markdown")
        return f"Aggregate {len(results)} results ({kind}, {output_format} format)"

    async def execute(
        self,
        args: dict[str, Any],
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,  # noqa: ARG002
    ) -> ToolResult:
        problem = self.validate(args)
        if problem:
            return ToolResult(
                llm_content=f"Result aggregation rejected\nReason: {problem}",
                return_display=f"Error: {problem}",
                error=problem,
            )
        cancel_token.raise_if_cancelled()
        request = self.parse(args)
        return ToolResult(
            llm_content=aggregate(request),
            return_display=(
                f"Aggregated {len(request.results)} results "
                f"using {request.aggregation_type} method"
            ),
            data={"results": len(request.results), "aggregation_type": request.aggregation_type},
        )
