"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from issue_triage.config.settings import TriageSettings
from issue_triage.config.taxonomy import LabelTaxonomy
from issue_triage.models.domain import Issue, IssueState, TriageRequest
from issue_triage.providers.base import Completion, GitProvider, LLMProvider
from issue_triage.utils.retry import RetryPolicy


@pytest.fixture(autouse=True)
def no_step_summary(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep reports out of a real GITHUB_STEP_SUMMARY when tests run in Actions."""
    monkeypatch.delenv("GITHUB_STEP_SUMMARY", raising=False)


@pytest.fixture
def taxonomy() -> LabelTaxonomy:
    """Small taxonomy shaped like a real repository's."""
    return LabelTaxonomy.from_mapping(
        {
            "categories": {
                "type": {"exclusive": True, "labels": ["bug", "feature"]},
                "priority": {"exclusive": True, "labels": ["p0", "p1", "p2"]},
                "area": {"labels": ["auth", "cli", "ide", "terminal", "ssh", "ui", "chat"]},
                "os": {"labels": ["os: windows", "os: mac"]},
                "theme": {"labels": ["theme:agent-quality", "theme:ssh-wsl"]},
                "workflow": {"labels": ["pending-triage", "duplicate"]},
            }
        }
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy without delays."""
    return RetryPolicy(max_retries=2, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def settings() -> TriageSettings:
    """Settings with retries that never sleep."""
    return TriageSettings(
        retry={"max_retries": 2, "base_delay": 0.0, "max_delay": 0.0},
        llm={"model": "gpt-4o-mini"},
    )


@pytest.fixture
def triage_request() -> TriageRequest:
    return TriageRequest(
        issue_number=42,
        title="Crash on startup",
        body="app crashes",
        owner="acme",
        repo="widgets",
        token="ghp_test_token",
    )


@pytest.fixture
def mock_git() -> AsyncMock:
    """Issue-tracker provider with every call succeeding."""
    git = AsyncMock(spec=GitProvider)
    git.get_issues.return_value = []
    git.get_comments.return_value = []
    git.add_labels.side_effect = lambda number, labels: list(labels)
    git.remove_label.return_value = True
    git.get_label_events.return_value = []
    git.get_comment_reactions.return_value = []
    git.close_issue.return_value = None
    return git


@pytest.fixture
def mock_llm() -> AsyncMock:
    """Language-model provider returning an empty reply unless configured."""
    llm = AsyncMock(spec=LLMProvider)
    llm.name = "test-llm"
    llm.complete.return_value = Completion(text="", model="gpt-4o-mini", provider="test-llm")
    return llm


def make_completion(text: str) -> Completion:
    return Completion(text=text, model="gpt-4o-mini", provider="test-llm")


def make_issue(number: int, title: str = "Existing issue", **kwargs) -> Issue:
    defaults = {
        "body": f"Body of issue {number}",
        "state": IssueState.OPEN,
        "labels": ["bug"],
        "url": f"https://github.com/acme/widgets/issues/{number}",
        "author": "reporter",
        "created_at": datetime(2026, 1, 1, tzinfo=UTC),
    }
    defaults.update(kwargs)
    return Issue(number=number, title=title, **defaults)


@pytest.fixture
def completion():
    """Factory for model replies."""
    return make_completion


@pytest.fixture
def issue_factory():
    """Factory for existing issues."""
    return make_issue
