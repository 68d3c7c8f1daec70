"""Combine named results from several agents into one document."""

from __future__ import annotations

import json
import math
import re
from collections import Counter
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agent_orchestrator.utils import preview, utc_now, utc_timestamp

MAX_RESULTS = 20
UNGROUPED = "Ungrouped"
ALL_RESULTS = "All Results"

AggregationType = Literal["summary", "merge", "compare", "analyze", "custom"]
OutputFormat = Literal["markdown", "text", "json", "report"]
SortBy = Literal["name", "length", "timestamp", "none"]


class ResultSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    content: str
    metadata: dict[str, Any] | None = None

    @field_validator("name", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be empty."
            raise ValueError(msg)
        return value


class AggregationRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    results: list[ResultSource]
    aggregation_type: AggregationType = Field(default="summary", alias="aggregationType")
    title: str = "Aggregated Results"
    format: OutputFormat = "markdown"
    include_metadata: bool = Field(default=False, alias="includeMetadata")
    custom_instructions: str | None = Field(default=None, alias="customInstructions")
    group_by: str | None = Field(default=None, alias="groupBy")
    sort_by: SortBy = Field(default="name", alias="sortBy")

    @field_validator("results")
    @classmethod
    def _check_results(cls, value: list[ResultSource]) -> list[ResultSource]:
        if not value:
            msg = "At least one result must be provided."
            raise ValueError(msg)
        if len(value) > MAX_RESULTS:
            msg = f"Maximum of {MAX_RESULTS} results can be aggregated at once."
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _check_custom(self) -> AggregationRequest:
        if self.aggregation_type == "custom" and not (self.custom_instructions or "").strip():
            msg = "Custom instructions are required when using custom aggregation type."
            raise ValueError(msg)
        return self


def sort_results(results: list[ResultSource], sort_by: SortBy) -> list[ResultSource]:
    if sort_by == "name":
        return sorted(results, key=lambda result: result.name.lower())
    if sort_by == "length":
        return sorted(results, key=lambda result: len(result.content), reverse=True)
    if sort_by == "timestamp":
        # Newest first; results without a timestamp go last.
        return sorted(results, key=_timestamp_of, reverse=True)
    return list(results)


def _timestamp_of(result: ResultSource) -> str:
    metadata = result.metadata or {}
    return str(metadata.get("timestamp") or metadata.get("createdAt") or "")


def group_results(
    results: list[ResultSource], group_by: str | None
) -> dict[str, list[ResultSource]]:
    if not group_by:
        return {ALL_RESULTS: list(results)}
    groups: dict[str, list[ResultSource]] = {}
    for result in results:
        key = (result.metadata or {}).get(group_by) or UNGROUPED
        groups.setdefault(str(key), []).append(result)
    return groups


def aggregate(request: AggregationRequest) -> str:
    """Render the aggregation described by ``request`` in its output format."""
    groups = group_results(sort_results(request.results, request.sort_by), request.group_by)
    renderer = _RENDERERS[request.aggregation_type]
    return format_output(renderer(groups, request), request.format)


def _summary(groups: dict[str, list[ResultSource]], request: AggregationRequest) -> str:
    results = [result for group in groups.values() for result in group]
    total_length = sum(len(result.content) for result in results)
    lines = [
        f"# {request.title}",
        "",
        "## Summary Overview",
        "",
        f"- **Total Results**: {len(results)}",
        f"- **Total Content Length**: {total_length:,} characters",
        f"- **Average Content Length**: {round(total_length / len(results)):,} characters",
        f"- **Groups**: {len(groups)}",
        "",
    ]
    for group_name, group in groups.items():
        if len(groups) > 1:
            lines.extend([f"## {group_name}", ""])
        for result in group:
            lines.extend([f"### {result.name}", "", preview(result.content, 200), ""])
            if request.include_metadata and result.metadata:
                lines.extend([f"**Metadata**: {json.dumps(result.metadata, indent=2)}", ""])
            lines.extend([f"**Length**: {len(result.content)} characters", "", "---", ""])
    return "\n".join(lines)


def _merge(groups: dict[str, list[ResultSource]], request: AggregationRequest) -> str:
    lines = [f"# {request.title}", ""]
    for group_name, group in groups.items():
        if len(groups) > 1:
            lines.extend([f"## {group_name}", ""])
        for result in group:
            lines.extend([f"### {result.name}", "", result.content, ""])
            if request.include_metadata and result.metadata:
                lines.extend(
                    [
                        "<details>",
                        "<summary>Metadata</summary>",
                        "",
                        "```json",
                        json.dumps(result.metadata, indent=2),
                        "```",
                        "",
                        "</details>",
                        "",
                    ]
                )
    return "\n".join(lines)


def _compare(groups: dict[str, list[ResultSource]], request: AggregationRequest) -> str:
    results = [result for group in groups.values() for result in group]
    shortest = min(results, key=lambda result: len(result.content))
    longest = max(results, key=lambda result: len(result.content))
    average = round(sum(len(result.content) for result in results) / len(results))
    lines = [
        f"# {request.title}",
        "",
        "## Comparison Analysis",
        "",
        "### Content Length Analysis",
        "",
        f"- **Shortest**: {len(shortest.content)} characters ({shortest.name})",
        f"- **Longest**: {len(longest.content)} characters ({longest.name})",
        f"- **Average**: {average} characters",
        "",
        "### Content Overview",
        "",
    ]
    for result in results:
        lines.extend([f"**{result.name}**: {preview(result.content, 100)}", ""])
    lines.extend(["### Detailed Comparison", ""])
    for group_name, group in groups.items():
        if len(groups) > 1:
            lines.extend([f"#### {group_name}", ""])
        for result in group:
            lines.append(f"**{result.name}**:")
            lines.append(f"- Length: {len(result.content)} characters")
            lines.append(f"- Content preview: {preview(result.content, 150)}")
            if request.include_metadata and result.metadata:
                lines.append(f"- Metadata: {', '.join(result.metadata)}")
            lines.append("")
    return "\n".join(lines)


def _analyze(groups: dict[str, list[ResultSource]], request: AggregationRequest) -> str:
    results = [result for group in groups.values() for result in group]
    lengths = [len(result.content) for result in results]
    total = sum(lengths)
    mean = total / len(lengths)
    std_dev = math.sqrt(sum((length - mean) ** 2 for length in lengths) / len(lengths))
    lines = [
        f"# {request.title}",
        "",
        "## Results Analysis",
        "",
        "### Statistical Summary",
        "",
        f"- **Total Results**: {len(results)}",
        f"- **Total Content**: {total:,} characters",
        f"- **Mean Length**: {round(mean):,} characters",
        f"- **Standard Deviation**: {round(std_dev):,} characters",
        f"- **Length Range**: {min(lengths):,} - {max(lengths):,} characters",
        "",
        "### Content Analysis",
        "",
    ]
    words = [
        word
        for word in " ".join(result.content for result in results).lower().split()
        if len(word) > 3
    ]
    top_words = Counter(words).most_common(10)
    if top_words:
        lines.append("**Most Common Words**:")
        lines.extend(f"- {word}: {count} occurrences" for word, count in top_words)
        lines.append("")

    lines.extend(["### Pattern Analysis", ""])
    for group_name, group in groups.items():
        if len(groups) > 1:
            lines.extend([f"#### {group_name}", ""])
        group_average = sum(len(result.content) for result in group) / len(group)
        lines.append(f"- **Results in group**: {len(group)}")
        lines.append(f"- **Average length**: {round(group_average)} characters")
        variation = "Varied" if len(group) > 1 else "Single result"
        lines.extend([f"- **Content variation**: {variation}", ""])
        for result in group:
            word_count = len(result.content.split())
            sentences = len(re.findall(r"[.!?]+", result.content))
            lines.append(f"**{result.name}**:")
            lines.append(
                f"  - {len(result.content)} characters, ~{word_count} words, ~{sentences} sentences"
            )
            if request.include_metadata and result.metadata:
                lines.append(f"  - Metadata: {json.dumps(result.metadata)}")
        lines.append("")
    return "\n".join(lines)


def _custom(groups: dict[str, list[ResultSource]], request: AggregationRequest) -> str:
    instructions = request.custom_instructions or ""
    lowered = instructions.lower()
    lines = [
        f"# {request.title}",
        "",
        "## Custom Aggregation",
        "",
        f"**Instructions**: {instructions}",
        "",
        "## Processing Results",
        "",
    ]
    for group_name, group in groups.items():
        if len(groups) > 1:
            lines.extend([f"### {group_name}", ""])
        lines.extend([f"Applying custom instructions to {len(group)} result(s):", ""])
        for result in group:
            lines.extend([f"#### {result.name}", ""])
            if "extract" in lowered:
                key_lines = [line for line in result.content.splitlines() if line.strip()][:3]
                lines.append("**Key Information**:")
                lines.extend(f"- {line}" for line in key_lines)
                lines.append("")
            elif "summarize" in lowered:
                lines.extend([f"**Summary**: {preview(result.content, 200)}", ""])
            else:
                lines.extend(
                    ["**Content** (processed per custom instructions):", "", result.content, ""]
                )
            if request.include_metadata and result.metadata:
                lines.extend([f"**Metadata**: {json.dumps(result.metadata, indent=2)}", ""])
            lines.extend(["---", ""])
    return "\n".join(lines)


_RENDERERS = {
    "summary": _summary,
    "merge": _merge,
    "compare": _compare,
    "analyze": _analyze,
    "custom": _custom,
}

_MARKDOWN_STRIP = (
    (re.compile(r"#{1,6}\s"), ""),
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"`(.*?)`"), r"\1"),
    (re.compile(r"\[([^\]]*)\]\([^)]*\)"), r"\1"),
)


def format_output(content: str, output_format: OutputFormat) -> str:
    if output_format == "text":
        for pattern, replacement in _MARKDOWN_STRIP:
            content = pattern.sub(replacement, content)
        return content
    if output_format == "json":
        return json.dumps(
            {"content": content, "format": "aggregated_results", "timestamp": utc_timestamp()},
            indent=2,
        )
    if output_format == "report":
        header = (
            "---\n"
            'title: "Aggregated Results Report"\n'
            f"date: {utc_now().date().isoformat()}\n"
            'generated: "agent-orchestrator"\n'
            "---\n\n"
        )
        return header + content
    return content
