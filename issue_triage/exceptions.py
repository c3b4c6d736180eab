"""Custom exception hierarchy for the issue-triage pipeline.

Exception Hierarchy:
    TriageError (base)
    ├── ConfigurationError
    ├── InputValidationError
    ├── ExternalServiceError
    │   └── RateLimitError
    └── ModelError
        ├── ProviderConnectionError
        ├── ClassificationError
        └── CommentGenerationError

Stage failures inside a run are never propagated out of the orchestrator;
they are caught at the stage boundary and recorded in the workflow summary.
These types exist so providers can wrap library errors (httpx, PyGithub)
with a stable, readable message.

Example Usage:
    >>> from issue_triage.exceptions import ConfigurationError
    >>> try:
    ...     load_taxonomy(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Taxonomy file not found: {path}") from e
"""


class TriageError(Exception):
    """Base exception for all issue-triage errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(TriageError):
    """Configuration-related errors.

    Examples:
        - Configuration or taxonomy file not found
        - Invalid YAML syntax
        - Invalid configuration values
    """

    pass


class InputValidationError(TriageError):
    """Required run inputs are missing or malformed.

    Attributes:
        missing: Names of the inputs that failed validation
    """

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        if self.missing:
            message = f"{message}: {', '.join(self.missing)}"
        super().__init__(message)


class ExternalServiceError(TriageError):
    """External service communication errors.

    Raised when the issue tracker or the language-model service returns
    an error or cannot be reached.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class RateLimitError(ExternalServiceError):
    """The remote service throttled the request (HTTP 429 or equivalent)."""

    pass


class ModelError(TriageError):
    """Base exception for language-model failures.

    Attributes:
        provider: Name of the provider (e.g., "ollama", "openai-compatible")
        task: Pipeline task the call was made for ("classifier", "comment", ...)
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        task: str | None = None,
    ) -> None:
        self.provider = provider
        self.task = task

        parts = []
        if provider:
            parts.append(f"provider: {provider}")
        if task:
            parts.append(f"task: {task}")

        full_message = message if not parts else f"{message} ({', '.join(parts)})"
        super().__init__(full_message)
        self.message = message


class ProviderConnectionError(ModelError):
    """Cannot connect to the language-model provider.

    Attributes:
        provider_url: URL of the provider that couldn't be reached
    """

    def __init__(
        self,
        message: str,
        provider_url: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.provider_url = provider_url
        if provider_url and provider_url not in message:
            message = f"{message} (url: {provider_url})"
        super().__init__(message, provider=provider)


class ClassificationError(ModelError):
    """The classifier could not produce a usable result."""

    pass


class CommentGenerationError(ModelError):
    """The acknowledgment comment could not be generated."""

    pass
