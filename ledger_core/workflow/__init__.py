"""Suggestion review workflow package."""

from ledger_core.workflow.suggestions import AgentPolicy, SuggestionWorkflow

__all__ = ["AgentPolicy", "SuggestionWorkflow"]
