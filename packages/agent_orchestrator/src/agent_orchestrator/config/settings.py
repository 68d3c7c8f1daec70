"""Pydantic models for orchestrator settings."""

from __future__ import annotations

import os
import shlex

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel, frozen=True):
    """Runtime configuration loaded from environment variables."""

    project_root: str = Field(default_factory=os.getcwd)
    subagent_command: list[str] = Field(default_factory=lambda: ["qwen"])
    subagent_prompt_flag: str = "-p"
    max_concurrent_agents: int = Field(default=3, ge=1, le=5)
    default_task_timeout: float = Field(default=60.0, ge=5, le=300)
    termination_grace_period: float = Field(default=0.2, gt=0)
    retry_failed_tasks: bool = False
    max_task_retries: int = Field(default=2, ge=0)
    content_split_threshold: int = Field(default=2000, gt=0)
    auto_approved_tools: list[str] = Field(default_factory=list)
    max_turns: int = Field(default=50, ge=1)
    log_level: str = "INFO"

    @field_validator("subagent_command")
    @classmethod
    def _require_command(cls, value: list[str]) -> list[str]:
        if not value:
            msg = "subagent_command must not be empty"
            raise ValueError(msg)
        return value


def _parse_list(value: str) -> list[str]:
    """Parse comma-separated string into list."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    load_dotenv()

    return Settings(
        project_root=os.getenv("ORCHESTRATOR_PROJECT_ROOT") or os.getcwd(),
        subagent_command=shlex.split(os.getenv("SUBAGENT_COMMAND", "qwen")),
        subagent_prompt_flag=os.getenv("SUBAGENT_PROMPT_FLAG", "-p"),
        max_concurrent_agents=int(os.getenv("MAX_CONCURRENT_AGENTS", "3")),
        default_task_timeout=float(os.getenv("DEFAULT_TASK_TIMEOUT", "60")),
        termination_grace_period=float(os.getenv("TERMINATION_GRACE_PERIOD", "0.2")),
        retry_failed_tasks=_parse_bool(os.getenv("RETRY_FAILED_TASKS", "false")),
        max_task_retries=int(os.getenv("MAX_TASK_RETRIES", "2")),
        content_split_threshold=int(os.getenv("CONTENT_SPLIT_THRESHOLD", "2000")),
        auto_approved_tools=_parse_list(os.getenv("AUTO_APPROVED_TOOLS", "")),
        max_turns=int(os.getenv("MAX_TURNS", "50")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
