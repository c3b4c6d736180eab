"""
Workflow summary: the per-run record of stage outcomes.

One ``WorkflowSummary`` is created at the start of a run with zeroed
counters, written only by the orchestrator, and finalized exactly once by
``create_summary()``. Code that needs to report a failure without owning the
summary receives an ``ErrorLog``, which can append entries but cannot read
or remove them.

Example:
    >>> summary = WorkflowSummary()
    >>> log_error(summary.errors, TriageStageName.CLASSIFICATION, "model timed out", 42)
    >>> summary.errors[0].detail
    'model timed out'
"""

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from issue_triage.enums import TriageStageName
from issue_triage.exceptions import TriageError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WorkflowError:
    """A single stage failure, in the order it happened."""

    stage: TriageStageName
    detail: str
    issue_number: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class WorkflowSummary:
    """Outcome of one triage run.

    A triage run handles exactly one issue and derives its counters with
    ``finalize()``. Cleanup jobs handle many and use ``finalize_batch()``.

    Attributes:
        success: False once the run is finalized with any recorded error
        total_processed: Issues handled (always 1 for a triage run)
        success_count: Issues handled without error
        failure_count: Issues with at least one recorded error
        skipped_count: Issues left untouched (cleanup jobs only)
        errors: Chronological stage failures; entries are never removed
        warnings: Degradations that did not fail the run (e.g. fallback comment)
        report: Rendered report, set once the summary has been emitted
        title: Heading of the rendered report
    """

    success: bool = True
    total_processed: int = 1
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    errors: list[WorkflowError] = field(default_factory=list)
    warnings: list[WorkflowError] = field(default_factory=list)
    finalized: bool = False
    report: str | None = None
    title: str = "Issue Triage Summary"

    def finalize(self) -> None:
        """Derive the success/failure counters from the error log."""
        if self.errors:
            self.failure_count = 1
            self.success_count = 0
            self.success = False
        else:
            self.success_count = 1
            self.failure_count = 0

    def finalize_batch(self, processed: int, succeeded: int, skipped: int) -> None:
        """Set the counters of a job that handled many issues."""
        self.total_processed = processed
        self.success_count = succeeded
        self.skipped_count = skipped
        self.failure_count = max(processed - succeeded - skipped, 0)
        self.success = not self.errors

    @property
    def exit_code(self) -> int:
        return 0 if self.success and not self.errors else 1


def describe_cause(cause: Any) -> str:
    """Normalize an error cause of any shape to a readable string."""
    try:
        if cause is None:
            return "Unknown error"
        if isinstance(cause, str):
            return cause or "Unknown error"
        if isinstance(cause, TriageError):
            return f"{type(cause).__name__}: {cause}"
        if isinstance(cause, BaseException):
            message = str(cause)
            return f"{type(cause).__name__}: {message}" if message else type(cause).__name__
        return str(cause)
    except Exception:  # str()/repr() of arbitrary objects can raise
        return f"<unprintable {type(cause).__name__}>"


def log_error(
    errors: list[WorkflowError],
    stage: TriageStageName | str,
    cause: Any,
    issue_number: int | None = None,
) -> None:
    """Append one structured error entry. Never raises."""
    try:
        stage_name = TriageStageName(stage)
    except ValueError:
        stage_name = TriageStageName.MAIN

    detail = describe_cause(cause)
    errors.append(WorkflowError(stage=stage_name, detail=detail, issue_number=issue_number))
    log.error("stage_failed", stage=stage_name.value, issue=issue_number, error=detail)


def record_warning(
    summary: WorkflowSummary,
    stage: TriageStageName,
    cause: Any,
    issue_number: int | None = None,
) -> None:
    """Note a degradation that does not count as a failure."""
    detail = describe_cause(cause)
    summary.warnings.append(WorkflowError(stage=stage, detail=detail, issue_number=issue_number))
    log.warning("stage_degraded", stage=stage.value, issue=issue_number, detail=detail)


class ErrorLog:
    """Append-only handle onto a summary's error list.

    Handed to code that may record failures but must not see or branch on
    entries recorded by other stages.
    """

    __slots__ = ("_errors", "_issue_number")

    def __init__(self, errors: list[WorkflowError], issue_number: int | None = None) -> None:
        self._errors = errors
        self._issue_number = issue_number

    def record(self, stage: TriageStageName | str, cause: Any) -> None:
        log_error(self._errors, stage, cause, self._issue_number)


def render_summary(summary: WorkflowSummary) -> str:
    """Render the summary as a Markdown report."""
    status = "✅ Success" if summary.success else "❌ Failed"
    lines = [
        f"## {summary.title}",
        "",
        f"**Status**: {status}",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Processed | {summary.total_processed} |",
        f"| Succeeded | {summary.success_count} |",
        f"| Failed | {summary.failure_count} |",
        f"| Skipped | {summary.skipped_count} |",
    ]

    if summary.errors:
        lines.extend(["", "### Errors", "", "| Stage | Issue | Detail |", "|-------|-------|--------|"])
        for error in summary.errors:
            issue = f"#{error.issue_number}" if error.issue_number else "-"
            detail = error.detail.replace("|", "\\|").replace("\n", " ")
            lines.append(f"| `{error.stage.value}` | {issue} | {detail} |")

    if summary.warnings:
        lines.extend(["", "### Warnings", ""])
        for warning in summary.warnings:
            lines.append(f"- `{warning.stage.value}`: {warning.detail}")

    return "\n".join(lines) + "\n"


def create_summary(
    summary: WorkflowSummary,
    step_summary_path: str | None = None,
    appendix: str | None = None,
) -> str:
    """Emit the final report for a run. Must be called exactly once.

    The report is logged, stored on ``summary.report`` and returned. When
    ``step_summary_path`` (or the ``GITHUB_STEP_SUMMARY`` environment
    variable) names a file, the report is appended to it so it shows on the
    workflow run page. ``appendix`` (e.g. the usage table) is added after
    the summary sections.

    Raises:
        RuntimeError: If the summary was already emitted
    """
    if summary.finalized:
        raise RuntimeError("Workflow summary has already been emitted")
    summary.finalized = True

    report = render_summary(summary)
    if appendix:
        report = f"{report}\n{appendix}"
    summary.report = report
    log.info(
        "workflow_summary",
        success=summary.success,
        total_processed=summary.total_processed,
        success_count=summary.success_count,
        failure_count=summary.failure_count,
        skipped_count=summary.skipped_count,
        errors=[{"stage": e.stage.value, "detail": e.detail} for e in summary.errors],
    )

    target = step_summary_path or os.environ.get("GITHUB_STEP_SUMMARY")
    if target:
        try:
            with Path(target).open("a", encoding="utf-8") as f:
                f.write(report)
        except OSError as e:
            log.warning("step_summary_write_failed", path=target, error=str(e))

    return report
