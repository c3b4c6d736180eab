"""Domain models for the triage pipeline."""

from issue_triage.models.domain import (
    Classification,
    ClassificationFailure,
    ClassificationResult,
    Comment,
    CommentDraft,
    DuplicateCandidate,
    Issue,
    IssueState,
    LabelEvent,
    RepositoryTarget,
    TriageRequest,
)

__all__ = [
    "Classification",
    "ClassificationFailure",
    "ClassificationResult",
    "Comment",
    "CommentDraft",
    "DuplicateCandidate",
    "Issue",
    "IssueState",
    "LabelEvent",
    "RepositoryTarget",
    "TriageRequest",
]
