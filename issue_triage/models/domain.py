"""
Domain models for the triage pipeline.

This module contains the data classes passed between the orchestrator and
its collaborators: the issue being triaged, the validated run inputs,
duplicate candidates and the classification result. They are the normalized
internal representation, converted from provider-specific formats
(GitHub API objects, model JSON responses).

Example:
    Building a request from workflow inputs::

        request = TriageRequest(
            issue_number=42,
            title="Crash on startup",
            body="The app crashes",
            owner="acme",
            repo="widgets",
            token="ghp_...",
        )
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IssueState(str, Enum):
    """Enumeration of possible issue states."""

    OPEN = "open"
    """Issue is active and awaiting resolution."""

    CLOSED = "closed"
    """Issue has been resolved or dismissed."""


@dataclass
class Issue:
    """Represents an issue from the tracker.

    The triage core only reads title and body; labels and comments are
    changed through collaborator calls.
    """

    number: int
    """Human-readable issue number (e.g., #42)."""

    title: str
    """Issue title/summary."""

    body: str
    """Full issue description in markdown format. May be empty."""

    state: IssueState = IssueState.OPEN
    """Current state of the issue (open or closed)."""

    labels: list[str] = field(default_factory=list)
    """Label names attached to the issue."""

    url: str = ""
    """Web URL to view the issue in the tracker UI."""

    author: str = ""
    """Username of the issue creator."""

    issue_type: str | None = None
    """Issue type name (e.g., "Bug", "Feature") when the tracker has types configured."""

    is_pull_request: bool = False
    """True when the tracker returned a pull request through the issues API."""

    created_at: datetime | None = None
    """Timestamp when the issue was created."""

    updated_at: datetime | None = None
    """Timestamp of the most recent update to the issue."""


@dataclass
class Comment:
    """Represents an issue comment."""

    id: int
    body: str
    author: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class TriageRequest:
    """Inputs for a single triage run.

    Owner, repository and token are bound into the collaborators when they
    are built for the request; the orchestrator itself only validates them.
    """

    issue_number: int
    title: str
    body: str
    owner: str
    repo: str
    token: str = field(repr=False)

    @property
    def repository(self) -> str:
        """Full repository name (``owner/repo``)."""
        return f"{self.owner}/{self.repo}"

    def missing_inputs(self) -> list[str]:
        """Names of required inputs that are absent or invalid.

        Title and body may be empty.
        """
        missing = []
        if not isinstance(self.issue_number, int) or self.issue_number <= 0:
            missing.append("issue_number")
        if not self.owner:
            missing.append("owner")
        if not self.repo:
            missing.append("repo")
        if not self.token:
            missing.append("token")
        return missing


@dataclass(frozen=True)
class DuplicateCandidate:
    """An existing issue judged similar enough to warrant a duplicate marking."""

    issue_number: int
    issue_title: str
    similarity_score: float
    """Model similarity in [0, 1]."""

    reasoning: str = ""
    url: str = ""


@dataclass(frozen=True)
class Classification:
    """Successful classification payload.

    Attributes:
        labels: Recommended labels in the order the model gave them
        confidence: Per-label confidence in [0, 1]
        reasoning: Free-text explanation from the model
    """

    labels: tuple[str, ...] = ()
    confidence: dict[str, float] = field(default_factory=dict)
    reasoning: str = ""

    is_error = False

    @property
    def recommended_labels(self) -> list[str]:
        return list(self.labels)

    @property
    def error(self) -> None:
        return None


@dataclass(frozen=True)
class ClassificationFailure:
    """Classification could not be produced.

    Carries no labels: ``recommended_labels`` is always empty so a failed
    classification can never be applied to an issue.
    """

    error: str
    reasoning: str = ""

    is_error = True

    @property
    def recommended_labels(self) -> list[str]:
        return []

    @property
    def confidence(self) -> dict[str, float]:
        return {}


ClassificationResult = Classification | ClassificationFailure
"""Either a usable classification or a failure carrying its reason."""


@dataclass(frozen=True)
class CommentDraft:
    """Acknowledgment comment text and where it came from.

    Attributes:
        text: Comment body to post
        generated: True when the model produced the text, False for the fallback
        error: Why generation failed (only set when ``generated`` is False)
    """

    text: str
    generated: bool
    error: str | None = None


@dataclass(frozen=True)
class RepositoryTarget:
    """Repository and credential for a scheduled cleanup job."""

    owner: str
    repo: str
    token: str = field(repr=False)

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    def missing_inputs(self) -> list[str]:
        return [name for name in ("owner", "repo", "token") if not getattr(self, name)]


@dataclass(frozen=True)
class LabelEvent:
    """A label being added to or removed from an issue."""

    action: str
    """Either ``"labeled"`` or ``"unlabeled"``."""

    label: str
    created_at: datetime
