"""Hooks package for Strands agents that use the sub-agent tools.

Hooks follow the Strands HookProvider pattern: register callbacks
that respond to lifecycle events (BeforeToolCall, etc.).
"""

from agent_orchestrator.hooks.approval import ToolApprovalHook

__all__ = ["ToolApprovalHook"]
