"""
Abstract base classes for providers.

This module defines the provider interfaces that enable pluggable implementations
for issue-tracker operations (GitHub) and language-model completions
(OpenAI-compatible endpoints, Ollama).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from issue_triage.models.domain import Comment, Issue, LabelEvent


class GitProvider(ABC):
    """Abstract base class for issue-tracker implementations.

    This interface covers only what triage and cleanup need: listing
    issues, reading and writing comments, changing labels and closing
    issues. It
    normalizes provider-specific API objects into the domain models defined
    in models.domain.

    All methods are async to support non-blocking I/O. Implementations are
    bound to one repository and one credential when constructed.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Authenticate and resolve the repository.

        Raises:
            GithubException: If the repository cannot be accessed (GitHub).
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the underlying client. Safe to call more than once."""
        pass

    @abstractmethod
    async def get_issues(
        self,
        state: str = "open",
        per_page: int = 100,
        max_pages: int = 10,
        labels: list[str] | None = None,
    ) -> list[Issue]:
        """Retrieve issues from the repository, newest first.

        Pull requests returned by the tracker's issues API are excluded.

        Args:
            state: Filter by state. Valid values are "open", "closed", or "all".
            labels: Only issues carrying all of these labels (None for any).
            per_page: Page size requested from the API.
            max_pages: Upper bound on pages fetched; listing stops early on
                a short page.

        Returns:
            List of Issue objects sorted by creation date (newest first).

        Raises:
            GithubException: If the API request fails (GitHub).
        """
        pass

    @abstractmethod
    async def get_comments(self, issue_number: int, limit: int | None = None) -> list[Comment]:
        """Retrieve comments for an issue, oldest first.

        Args:
            issue_number: Issue number.
            limit: Maximum number of comments returned (None for all).

        Returns:
            List of Comment objects. Empty list if no comments exist.
        """
        pass

    @abstractmethod
    async def add_comment(self, issue_number: int, comment: str) -> Comment:
        """Add a Markdown comment to an issue.

        Returns:
            Created Comment object with server-assigned ID and timestamp.
        """
        pass

    @abstractmethod
    async def add_labels(self, issue_number: int, labels: list[str]) -> list[str]:
        """Add labels to an issue without removing existing ones.

        Returns:
            The issue's label names after the update.
        """
        pass

    @abstractmethod
    async def remove_label(self, issue_number: int, label: str) -> bool:
        """Remove a label from an issue.

        Returns:
            True if the label was removed, False if the issue did not carry it.
        """
        pass

    @abstractmethod
    async def get_label_events(self, issue_number: int) -> list[LabelEvent]:
        """Label additions and removals on an issue, oldest first."""
        pass

    @abstractmethod
    async def get_comment_reactions(self, issue_number: int, comment_id: int) -> list[str]:
        """Reaction contents on a comment (``"+1"``, ``"-1"``, ``"heart"``, ...)."""
        pass

    @abstractmethod
    async def close_issue(self, issue_number: int) -> None:
        """Close an issue."""
        pass


@dataclass(frozen=True)
class Completion:
    """Text returned by a language-model call.

    Token counts are None when the provider does not report usage.
    """

    text: str
    model: str
    provider: str
    input_tokens: int | None = None
    output_tokens: int | None = None


class LLMProvider(ABC):
    """Abstract base class for language-model providers.

    Implementations send a chat-style message list to a model and return
    the reply text. Every call is recorded in the run's usage tracker when
    one is attached.
    """

    name: str = "llm"

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        max_tokens: int | None = None,
        task: str = "completion",
    ) -> Completion:
        """Run a chat completion.

        Args:
            messages: ``[{"role": "user", "content": "..."}]`` style messages.
            model: Model to use; the provider's default when None.
            temperature: Sampling temperature.
            top_p: Nucleus sampling parameter.
            max_tokens: Upper bound on generated tokens.
            task: Pipeline task name, used for usage accounting and logs.

        Returns:
            The model's reply.

        Raises:
            ProviderConnectionError: If the provider cannot be reached.
            RateLimitError: If the provider throttled the request.
            ExternalServiceError: If the provider returned an error response.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying HTTP client."""
        pass
