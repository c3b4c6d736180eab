"""Provider implementations for the issue tracker and language models.

This package provides pluggable implementations for talking to GitHub and
to language-model services. The triage stages depend only on the abstract
base classes.

Key Components:
    - GitProvider: Abstract base for issue-tracker providers
    - LLMProvider: Abstract base for language-model providers
    - GitHubRestProvider: GitHub REST API implementation (PyGithub)
    - OpenAICompatibleProvider: Any OpenAI-compatible chat completions endpoint
    - OllamaProvider: Ollama local inference

Example:
    >>> from issue_triage.providers.factory import create_git_provider, create_llm_provider
    >>> git = create_git_provider(settings, request)
    >>> llm = create_llm_provider(settings, usage=tracker)
"""

from issue_triage.providers.base import Completion, GitProvider, LLMProvider

__all__ = [
    "Completion",
    "GitProvider",
    "LLMProvider",
]
