"""Configuration for the orchestration core."""

from agent_orchestrator.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
