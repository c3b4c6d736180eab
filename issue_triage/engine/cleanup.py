"""
Scheduled cleanup of issues left waiting on a label.

Two jobs run on a schedule rather than on an issue event:

- ``DuplicateCloser`` closes issues still labelled ``duplicate`` once the
  grace period announced in the duplicate notice has passed. If the reporter
  answered the notice (a later human comment, or a thumbs-down on the notice)
  the issue goes back to maintainers: ``duplicate`` is swapped for
  ``pending-triage`` instead.
- ``StaleIssueCloser`` closes issues labelled ``pending-response`` that saw
  no human activity for the configured number of days.

A job lists the labelled issues once and handles them one at a time. A
failure on one issue is recorded against the job's stage and the job moves
on to the next issue. Each job emits exactly one workflow summary:
closed and relabelled issues count as succeeded, issues that are not due
yet as skipped.

Example:
    >>> job = DuplicateCloser(settings, default_git_factory(settings))
    >>> summary = await job.run(RepositoryTarget("acme", "widgets", token))
    >>> sys.exit(summary.exit_code)
"""

import re
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog

from issue_triage.config.settings import TriageSettings
from issue_triage.engine.stages.duplicates import DUPLICATE_NOTICE_MARKER
from issue_triage.engine.summary import ErrorLog, WorkflowSummary, create_summary, log_error
from issue_triage.enums import TriageStageName
from issue_triage.exceptions import InputValidationError
from issue_triage.models.domain import Comment, Issue, LabelEvent, RepositoryTarget
from issue_triage.providers.base import GitProvider
from issue_triage.providers.factory import create_git_provider
from issue_triage.utils.logging_config import bind_run_context
from issue_triage.utils.retry import retry_with_backoff
from issue_triage.utils.text import is_bot_login

log = structlog.get_logger(__name__)

_ORIGINAL_ISSUE_REF = re.compile(r"#(\d+):")

GitFactory = Callable[[RepositoryTarget], Awaitable[GitProvider]]


def default_git_factory(settings: TriageSettings) -> GitFactory:
    """Build a connected GitHub provider for the target repository."""

    async def build(target: RepositoryTarget) -> GitProvider:
        git = create_git_provider(settings, target)
        await git.connect()
        return git

    return build


class CleanupOutcome(str, Enum):
    CLOSED = "closed"
    RELABELED = "relabeled"
    SKIPPED = "skipped"


def label_added_at(events: list[LabelEvent], label: str) -> datetime | None:
    """When ``label`` was most recently added, or None if it never was."""
    added = [e.created_at for e in events if e.action == "labeled" and e.label == label]
    return max(added, default=None)


def duplicate_close_comment(original_issue: int | None) -> str:
    original_ref = f"#{original_issue}" if original_issue else "an existing issue"
    return (
        f"This issue has been automatically closed as it appears to be a duplicate of {original_ref}.\n\n"
        "If you believe this is incorrect, please comment on this issue and a maintainer will review it."
    )


def stale_close_comment(days: int) -> str:
    return (
        f"This issue has been automatically closed due to inactivity. It has been {days} days since we "
        "requested additional information.\n\n"
        "If you still need help with this issue, please feel free to reopen it or create a new issue "
        "with the requested details."
    )


class CleanupJob(ABC):
    """Close or relabel every open issue carrying one label.

    Attributes:
        settings: Triage settings (cleanup thresholds, labels, retry bounds).
        git_factory: Builds a connected provider from validated inputs.
        step_summary_path: Where to append the Markdown report (defaults to
            ``GITHUB_STEP_SUMMARY``).
    """

    stage: TriageStageName
    title: str

    def __init__(
        self,
        settings: TriageSettings,
        git_factory: GitFactory,
        step_summary_path: str | None = None,
    ) -> None:
        self.settings = settings
        self.git_factory = git_factory
        self.step_summary_path = step_summary_path

    @property
    @abstractmethod
    def label(self) -> str:
        """Label whose issues this job handles."""

    @abstractmethod
    async def process(self, git: GitProvider, issue: Issue, now: datetime) -> CleanupOutcome:
        """Handle one labelled issue. Raises when the issue could not be handled."""

    async def run(self, target: RepositoryTarget, now: datetime | None = None) -> WorkflowSummary:
        """Handle every open issue carrying the job's label.

        Never raises: a failure outside the per-issue loop is recorded under
        ``main``.
        """
        now = now or datetime.now(UTC)
        summary = WorkflowSummary(title=self.title, total_processed=0)
        errors = ErrorLog(summary.errors)
        outcomes: Counter[CleanupOutcome] = Counter()
        failed = 0
        git: GitProvider | None = None

        try:
            missing = target.missing_inputs()
            if missing:
                errors.record(
                    TriageStageName.INITIALIZATION,
                    InputValidationError("Missing or invalid required inputs", missing),
                )
                return summary

            bind_run_context(job=self.stage.value, repository=target.repository)

            try:
                git = await self.git_factory(target)
            except Exception as e:
                errors.record(TriageStageName.INITIALIZATION, e)
                return summary

            config = self.settings.cleanup
            issues = await git.get_issues(
                state="open", per_page=config.per_page, max_pages=config.max_pages, labels=[self.label]
            )
            log.info("cleanup_start", job=self.stage.value, label=self.label, issues=len(issues))

            for issue in issues:
                try:
                    outcome = await self.process(git, issue, now)
                except Exception as e:
                    log_error(summary.errors, self.stage, e, issue.number)
                    failed += 1
                    continue
                outcomes[outcome] += 1
                log.info("cleanup_issue_done", issue=issue.number, outcome=outcome.value)
        except Exception as e:
            errors.record(TriageStageName.MAIN, e)
        finally:
            if git is not None:
                try:
                    await git.disconnect()
                except Exception as e:
                    log.warning("git_disconnect_failed", error=str(e))
            summary.finalize_batch(
                processed=sum(outcomes.values()) + failed,
                succeeded=outcomes[CleanupOutcome.CLOSED] + outcomes[CleanupOutcome.RELABELED],
                skipped=outcomes[CleanupOutcome.SKIPPED],
            )
            create_summary(summary, self.step_summary_path, appendix=self._render_outcomes(outcomes))

        return summary

    def _render_outcomes(self, outcomes: Counter[CleanupOutcome]) -> str:
        lines = ["### Outcomes", "", "| Outcome | Count |", "|---------|-------|"]
        lines.extend(f"| {outcome.value.capitalize()} | {outcomes[outcome]} |" for outcome in CleanupOutcome)
        return "\n".join(lines) + "\n"

    def _is_due(self, since: datetime, now: datetime, days: int) -> bool:
        return now - since >= timedelta(days=days)

    async def _close_with_comment(self, git: GitProvider, number: int, comment: str) -> None:
        policy = self.settings.retry_policy

        async def post() -> None:
            await git.add_comment(number, comment)

        async def close() -> None:
            await git.close_issue(number)

        await retry_with_backoff(post, policy, operation_name="post_close_comment")
        await retry_with_backoff(close, policy, operation_name="close_issue")


class DuplicateCloser(CleanupJob):
    """Close suspected duplicates nobody objected to."""

    stage = TriageStageName.DUPLICATE_CLEANUP
    title = "Duplicate Cleanup Summary"

    @property
    def label(self) -> str:
        return self.settings.labels.duplicate

    async def process(self, git: GitProvider, issue: Issue, now: datetime) -> CleanupOutcome:
        if self.label not in issue.labels:
            log.info("cleanup_skip", issue=issue.number, reason="label_removed")
            return CleanupOutcome.SKIPPED

        labeled_at = label_added_at(await git.get_label_events(issue.number), self.label)
        if labeled_at is None:
            log.info("cleanup_skip", issue=issue.number, reason="label_date_unknown")
            return CleanupOutcome.SKIPPED

        days = self.settings.duplicates.close_after_days
        if not self._is_due(labeled_at, now, days):
            log.info("cleanup_skip", issue=issue.number, reason="not_due", labeled_at=labeled_at.isoformat())
            return CleanupOutcome.SKIPPED

        original_issue, responded = await self._check_notice(git, issue.number)
        if responded:
            await self._relabel(git, issue.number)
            return CleanupOutcome.RELABELED

        await self._close_with_comment(git, issue.number, duplicate_close_comment(original_issue))
        return CleanupOutcome.CLOSED

    async def _check_notice(self, git: GitProvider, number: int) -> tuple[int | None, bool]:
        """Find the issue named in the duplicate notice and whether anyone answered it.

        Returns:
            ``(original_issue, responded)``. Without a notice there is
            nothing to answer and the original issue is unknown.
        """
        comments = await git.get_comments(number)
        notice = next((c for c in comments if DUPLICATE_NOTICE_MARKER in c.body), None)
        if notice is None:
            return None, False

        match = _ORIGINAL_ISSUE_REF.search(notice.body)
        original_issue = int(match.group(1)) if match else None

        if any(self._answers(comment, notice) for comment in comments):
            log.info("duplicate_notice_answered", issue=number, via="comment")
            return original_issue, True

        reactions = await git.get_comment_reactions(number, notice.id)
        if "-1" in reactions:
            log.info("duplicate_notice_answered", issue=number, via="reaction")
            return original_issue, True

        return original_issue, False

    def _answers(self, comment: Comment, notice: Comment) -> bool:
        if comment.id == notice.id or comment.created_at is None or notice.created_at is None:
            return False
        if is_bot_login(comment.author, self.settings.cleanup.bot_login_patterns):
            return False
        return comment.created_at > notice.created_at

    async def _relabel(self, git: GitProvider, number: int) -> None:
        labels = self.settings.labels
        policy = self.settings.retry_policy

        async def remove() -> None:
            await git.remove_label(number, labels.duplicate)

        async def add() -> None:
            await git.add_labels(number, [labels.pending_triage])

        await retry_with_backoff(remove, policy, operation_name="remove_duplicate_label")
        await retry_with_backoff(add, policy, operation_name="add_pending_triage_label")


class StaleIssueCloser(CleanupJob):
    """Close issues whose reporter never supplied the requested information."""

    stage = TriageStageName.STALE_CLEANUP
    title = "Stale Issue Cleanup Summary"

    @property
    def label(self) -> str:
        return self.settings.cleanup.pending_response

    async def process(self, git: GitProvider, issue: Issue, now: datetime) -> CleanupOutcome:
        if self.label not in issue.labels:
            log.info("cleanup_skip", issue=issue.number, reason="label_removed")
            return CleanupOutcome.SKIPPED

        events = await git.get_label_events(issue.number)
        labeled_at = label_added_at(events, self.label)
        if labeled_at is None:
            log.info("cleanup_skip", issue=issue.number, reason="label_date_unknown")
            return CleanupOutcome.SKIPPED

        last_activity = await self._last_activity(git, issue.number, events)
        reference = max(labeled_at, last_activity) if last_activity else labeled_at

        days = self.settings.cleanup.stale_after_days
        if not self._is_due(reference, now, days):
            log.info("cleanup_skip", issue=issue.number, reason="recent_activity", since=reference.isoformat())
            return CleanupOutcome.SKIPPED

        await self._close_with_comment(git, issue.number, stale_close_comment(days))
        return CleanupOutcome.CLOSED

    async def _last_activity(self, git: GitProvider, number: int, events: list[LabelEvent]) -> datetime | None:
        """Latest human comment or label change; bot comments do not count."""
        patterns = self.settings.cleanup.bot_login_patterns
        dates = [
            comment.created_at
            for comment in await git.get_comments(number)
            if comment.created_at is not None and not is_bot_login(comment.author, patterns)
        ]
        dates.extend(event.created_at for event in events)
        return max(dates, default=None)
