from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from agent_orchestrator.aggregation import (
    AggregationRequest,
    ResultSource,
    aggregate,
    format_output,
    group_results,
    sort_results,
)
from agent_orchestrator.cancellation import CancelToken
from agent_orchestrator.tools import AggregateResultsTool

RESULTS = [
    {"name": "security", "content": "No critical issues found.", "metadata": {"team": "sec"}},
    {"name": "Performance", "content": "Latency improved by ten percent overall."},
    {"name": "docs", "content": "Docs are fine.", "metadata": {"team": "dx"}},
]


def _request(**kwargs) -> AggregationRequest:
    return AggregationRequest.model_validate({"results": RESULTS, **kwargs})


def test_request_validation() -> None:
    with pytest.raises(ValidationError, match="At least one result"):
        AggregationRequest.model_validate({"results": []})
    with pytest.raises(ValidationError, match="Maximum of 20 results"):
        AggregationRequest.model_validate(
            {"results": [{"name": f"r{i}", "content": "x"} for i in range(21)]}
        )
    with pytest.raises(ValidationError, match="Custom instructions are required"):
        _request(aggregationType="custom")
    with pytest.raises(ValidationError):
        AggregationRequest.model_validate({"results": [{"name": " ", "content": "x"}]})


def test_sort_and_group() -> None:
    results = [ResultSource.model_validate(item) for item in RESULTS]

    assert [r.name for r in sort_results(results, "name")] == ["docs", "Performance", "security"]
    assert sort_results(results, "length")[0].name == "Performance"
    assert sort_results(results, "none") == results
    groups = group_results(results, "team")
    assert list(groups) == ["sec", "Ungrouped", "dx"]
    assert list(group_results(results, None)) == ["All Results"]


def test_summary_aggregation() -> None:
    text = aggregate(_request(title="Review"))

    assert text.startswith("# Review\n\n## Summary Overview")
    assert "- **Total Results**: 3" in text
    assert text.index("### docs") < text.index("### security")


def test_merge_groups_and_metadata() -> None:
    text = aggregate(_request(aggregationType="merge", groupBy="team", includeMetadata=True))

    assert "## sec" in text
    assert "## Ungrouped" in text
    assert "<summary>Metadata</summary>" in text
    assert "Latency improved by ten percent overall." in text


def test_compare_and_analyze() -> None:
    compare = aggregate(_request(aggregationType="compare"))
    analyze = aggregate(_request(aggregationType="analyze"))

    assert "- **Shortest**: 14 characters (docs)" in compare
    assert "- **Longest**: 40 characters (Performance)" in compare
    assert "### Statistical Summary" in analyze
    assert "**Most Common Words**:" in analyze


def test_custom_extract() -> None:
    text = aggregate(
        _request(aggregationType="custom", customInstructions="Extract the key findings")
    )

    assert "**Instructions**: Extract the key findings" in text
    assert "**Key Information**:" in text


def test_output_formats() -> None:
    assert format_output("## Title\n**bold** and `code`", "text") == "Title\nbold and code"
    payload = json.loads(format_output("body", "json"))
    assert payload["content"] == "body"
    assert payload["format"] == "aggregated_results"
    report = format_output("body", "report")
    assert report.startswith('---\ntitle: "Aggregated Results Report"')
    assert report.endswith("---\n\nbody")


@pytest.mark.asyncio
async def test_aggregate_tool() -> None:
    tool = AggregateResultsTool()

    result = await tool.execute({"results": RESULTS, "aggregationType": "merge"}, CancelToken())
    rejected = await tool.execute({"results": []}, CancelToken())

    assert result.error is None
    assert result.return_display == "Aggregated 3 results using merge method"
    assert tool.requires_confirmation({"results": RESULTS}) is None
    assert rejected.error == "results: At least one result must be provided."
    assert tool.describe({"results": RESULTS}) == "Aggregate 3 results (summary, markdown format)"
