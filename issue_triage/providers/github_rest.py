"""Issue-tracker access for the triage run, backed by PyGithub."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from github import Auth, Github, GithubException  # type: ignore[import-not-found]
from github.Issue import Issue as GHIssue  # type: ignore[import-not-found]
from github.IssueComment import IssueComment as GHComment  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from issue_triage.models.domain import Comment, Issue, IssueState, LabelEvent
from issue_triage.providers.base import GitProvider
from issue_triage.utils.retry import async_retry

log = structlog.get_logger(__name__)

T = TypeVar("T")


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a blocking PyGithub call on a worker thread."""
    return await asyncio.to_thread(func)


class GitHubRestProvider(GitProvider):
    """Reads and writes issues, comments and labels of one GitHub repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
        timeout: int = 30,
    ):
        """Create a provider bound to ``owner/repo``.

        Args:
            token: GitHub token (the workflow token or a personal access token)
            owner: Repository owner (user or organization)
            repo: Repository name
            base_url: GitHub API base URL (for GitHub Enterprise)
            timeout: Request timeout in seconds
        """
        self.token = token.strip() if token else token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: Github | None = None
        self._repo: GHRepository | None = None

    @property
    def repository(self) -> GHRepository:
        if self._repo is None:
            raise ConnectionError("GitHub provider is not connected; call connect() first")
        return self._repo

    @async_retry()
    async def connect(self) -> None:
        """Authenticate and resolve the target repository."""

        def _connect() -> tuple[Github, GHRepository]:
            client = Github(auth=Auth.Token(self.token), base_url=self.base_url, timeout=self.timeout)
            repo = client.get_repo(f"{self.owner}/{self.repo}")
            return client, repo

        self._client, self._repo = await _run_sync(_connect)
        log.info(
            "github_connected",
            base_url=self.base_url,
            owner=self.owner,
            repo=self.repo,
        )

    async def disconnect(self) -> None:
        """Release the underlying HTTP session."""
        if self._client:
            await _run_sync(self._client.close)
            self._client = None
            self._repo = None

    async def get_issues(
        self,
        state: str = "open",
        per_page: int = 100,
        max_pages: int = 10,
        labels: list[str] | None = None,
    ) -> list[Issue]:
        """Retrieve issues via GitHub API, excluding pull requests."""
        log.info("get_issues", state=state, per_page=per_page, max_pages=max_pages, labels=labels)

        gh_state = state if state in ("open", "closed", "all") else "open"
        repository = self.repository
        filters: dict[str, Any] = {"state": gh_state, "sort": "created", "direction": "desc"}
        if labels:
            filters["labels"] = list(labels)

        def _list_issues() -> list[GHIssue]:
            if self._client is not None:
                self._client.per_page = per_page
            paginated = repository.get_issues(**filters)

            collected: list[GHIssue] = []
            for page_number in range(max_pages):
                page = paginated.get_page(page_number)
                collected.extend(page)
                if len(page) < per_page:
                    break
            return collected

        try:
            gh_issues = await _run_sync(_list_issues)
        except GithubException as e:
            log.error("github_get_issues_failed", error=str(e))
            raise

        issues = [self._convert_issue(gh_issue) for gh_issue in gh_issues]
        return [issue for issue in issues if not issue.is_pull_request]

    async def get_comments(self, issue_number: int, limit: int | None = None) -> list[Comment]:
        """List the comments posted on an issue."""
        log.info("get_comments", number=issue_number, limit=limit)
        repository = self.repository

        def _get_comments() -> list[GHComment]:
            gh_issue = repository.get_issue(issue_number)
            comments = gh_issue.get_comments()
            if limit is None:
                return list(comments)
            return list(comments[:limit]) if limit > 0 else []

        try:
            gh_comments = await _run_sync(_get_comments)
        except GithubException as e:
            log.error("github_get_comments_failed", number=issue_number, error=str(e))
            raise

        return [self._convert_comment(c) for c in gh_comments]

    async def add_comment(self, issue_number: int, comment: str) -> Comment:
        """Post a comment on an issue."""
        log.info("add_comment", number=issue_number)
        repository = self.repository

        def _add_comment() -> GHComment:
            gh_issue = repository.get_issue(issue_number)
            return gh_issue.create_comment(comment)

        try:
            gh_comment = await _run_sync(_add_comment)
        except GithubException as e:
            log.error("github_add_comment_failed", number=issue_number, error=str(e))
            raise

        return self._convert_comment(gh_comment)

    async def add_labels(self, issue_number: int, labels: list[str]) -> list[str]:
        """Add labels to an issue."""
        log.info("add_labels", number=issue_number, labels=labels)
        repository = self.repository

        def _add_labels() -> list[str]:
            gh_issue = repository.get_issue(issue_number)
            gh_issue.add_to_labels(*labels)
            return [label.name for label in gh_issue.get_labels()]

        try:
            return await _run_sync(_add_labels)
        except GithubException as e:
            log.error("github_add_labels_failed", number=issue_number, labels=labels, error=str(e))
            raise

    async def remove_label(self, issue_number: int, label: str) -> bool:
        """Remove a label; a label the issue does not carry is not an error."""
        log.info("remove_label", number=issue_number, label=label)
        repository = self.repository

        def _remove_label() -> None:
            gh_issue = repository.get_issue(issue_number)
            gh_issue.remove_from_labels(label)

        try:
            await _run_sync(_remove_label)
        except GithubException as e:
            if e.status == 404:
                log.debug("github_label_not_present", number=issue_number, label=label)
                return False
            log.error("github_remove_label_failed", number=issue_number, label=label, error=str(e))
            raise
        return True

    async def get_label_events(self, issue_number: int) -> list[LabelEvent]:
        """List label changes from the issue's event timeline."""
        log.info("get_label_events", number=issue_number)
        repository = self.repository

        def _get_events() -> list[LabelEvent]:
            gh_issue = repository.get_issue(issue_number)
            return [
                LabelEvent(action=event.event, label=event.label.name, created_at=event.created_at)
                for event in gh_issue.get_events()
                if event.event in ("labeled", "unlabeled") and event.label is not None
            ]

        try:
            return await _run_sync(_get_events)
        except GithubException as e:
            log.error("github_get_events_failed", number=issue_number, error=str(e))
            raise

    async def get_comment_reactions(self, issue_number: int, comment_id: int) -> list[str]:
        """List reaction contents on one issue comment."""
        repository = self.repository

        def _get_reactions() -> list[str]:
            gh_comment = repository.get_issue(issue_number).get_comment(comment_id)
            return [reaction.content for reaction in gh_comment.get_reactions()]

        try:
            return await _run_sync(_get_reactions)
        except GithubException as e:
            log.error("github_get_reactions_failed", number=issue_number, comment=comment_id, error=str(e))
            raise

    async def close_issue(self, issue_number: int) -> None:
        log.info("close_issue", number=issue_number)
        repository = self.repository

        def _close() -> None:
            repository.get_issue(issue_number).edit(state="closed")

        try:
            await _run_sync(_close)
        except GithubException as e:
            log.error("github_close_issue_failed", number=issue_number, error=str(e))
            raise

    def _convert_issue(self, gh_issue: GHIssue) -> Issue:
        """Convert PyGithub Issue to our Issue model."""
        issue_type: Any = getattr(gh_issue, "type", None)

        return Issue(
            number=gh_issue.number,
            title=gh_issue.title,
            body=gh_issue.body or "",
            state=IssueState(gh_issue.state),
            labels=[label.name for label in gh_issue.labels],
            url=gh_issue.html_url,
            author=gh_issue.user.login if gh_issue.user else "",
            issue_type=getattr(issue_type, "name", None),
            is_pull_request=gh_issue.pull_request is not None,
            created_at=gh_issue.created_at,
            updated_at=gh_issue.updated_at,
        )

    def _convert_comment(self, gh_comment: GHComment) -> Comment:
        """Convert PyGithub IssueComment to our Comment model."""
        return Comment(
            id=gh_comment.id,
            body=gh_comment.body or "",
            author=gh_comment.user.login if gh_comment.user else "",
            created_at=gh_comment.created_at,
        )
