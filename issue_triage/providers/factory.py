"""Factories for creating provider instances based on configuration."""

import structlog

from issue_triage.config.settings import TriageSettings
from issue_triage.enums import LLMProviderType
from issue_triage.models.domain import RepositoryTarget, TriageRequest
from issue_triage.providers.base import GitProvider, LLMProvider
from issue_triage.providers.github_rest import GitHubRestProvider
from issue_triage.providers.ollama import OllamaProvider
from issue_triage.providers.openai_compatible import OpenAICompatibleProvider
from issue_triage.utils.usage import UsageTracker

log = structlog.get_logger(__name__)


def create_git_provider(settings: TriageSettings, target: TriageRequest | RepositoryTarget) -> GitProvider:
    """Create a GitHub provider bound to the target's repository and token.

    Example:
        >>> provider = create_git_provider(settings, target)
        >>> await provider.connect()
        >>> issues = await provider.get_issues()
    """
    log.info("creating_github_provider", base_url=settings.github.base_url, repository=target.repository)
    return GitHubRestProvider(
        token=target.token,
        owner=target.owner,
        repo=target.repo,
        base_url=settings.github.base_url,
        timeout=settings.github.timeout,
    )


def create_llm_provider(
    settings: TriageSettings,
    usage: UsageTracker | None = None,
    fallback_api_key: str | None = None,
) -> LLMProvider:
    """Create the configured language-model provider.

    Args:
        settings: Triage settings
        usage: Tracker the provider records completions into
        fallback_api_key: Key used when none is configured (GitHub Models
            accepts the workflow's GitHub token)

    Raises:
        ValueError: If provider type is not supported
    """
    llm = settings.llm
    provider_type = llm.provider_type

    if provider_type == LLMProviderType.OPENAI_COMPATIBLE:
        api_key = llm.api_key.get_secret_value() if llm.api_key else fallback_api_key
        log.info("creating_openai_compatible_provider", base_url=llm.base_url, model=llm.model)
        return OpenAICompatibleProvider(
            base_url=llm.base_url,
            model=llm.model,
            api_key=api_key,
            timeout=llm.timeout,
            usage=usage,
        )

    elif provider_type == LLMProviderType.OLLAMA:
        log.info("creating_ollama_provider", base_url=llm.base_url, model=llm.model)
        return OllamaProvider(
            base_url=llm.base_url,
            model=llm.model,
            timeout=llm.timeout,
            usage=usage,
        )

    else:
        raise ValueError(
            f"Unsupported LLM provider type: {provider_type}. Supported types: openai-compatible, ollama"
        )
