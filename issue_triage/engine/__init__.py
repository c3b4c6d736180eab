"""Triage pipeline engine.

This package provides the orchestration core for triaging a newly opened
issue: the orchestrator that sequences the stages, the stage collaborators,
and the workflow summary that records how each stage went.

Key Components:
    - TriageOrchestrator: Runs the pipeline for one issue
    - TriageCollaborators: The stage collaborators built for a run
    - WorkflowSummary: Per-run counters, errors and warnings
    - ErrorLog: Append-only handle for recording stage failures
    - DuplicateCloser, StaleIssueCloser: Scheduled cleanup jobs

Example:
    >>> from issue_triage.engine import TriageOrchestrator
    >>> orchestrator = TriageOrchestrator(taxonomy, factory)
    >>> summary = await orchestrator.run(request)
"""

from issue_triage.engine.cleanup import DuplicateCloser, StaleIssueCloser, default_git_factory
from issue_triage.engine.orchestrator import (
    CollaboratorFactory,
    TriageCollaborators,
    TriageOrchestrator,
    default_collaborator_factory,
)
from issue_triage.engine.summary import ErrorLog, WorkflowError, WorkflowSummary, create_summary, log_error

__all__ = [
    "CollaboratorFactory",
    "DuplicateCloser",
    "ErrorLog",
    "StaleIssueCloser",
    "TriageCollaborators",
    "TriageOrchestrator",
    "WorkflowError",
    "WorkflowSummary",
    "create_summary",
    "default_collaborator_factory",
    "default_git_factory",
    "log_error",
]
