"""Tests for TriageOrchestrator.

Tests cover:
1. Input validation and taxonomy loading before any collaborator is built
2. Routing between the duplicate path and the classification path
3. Stage isolation: each failure is recorded and the pipeline continues
4. Summary emission and exit status
5. The default collaborator factory
"""

import json
from dataclasses import replace
from unittest.mock import AsyncMock, Mock, call, patch

import pytest

from issue_triage.engine.orchestrator import TriageCollaborators, TriageOrchestrator, default_collaborator_factory
from issue_triage.engine.stages import CommentGenerator, DuplicateDetector, IssueClassifier, LabelAssigner
from issue_triage.engine.stages.comments import FALLBACK_COMMENT
from issue_triage.exceptions import ConfigurationError
from issue_triage.enums import TriageStageName
from issue_triage.models.domain import Issue
from issue_triage.providers.base import Completion
from issue_triage.utils.usage import UsageTracker

CLASSIFIED = json.dumps({"labels": ["bug", "p1"], "confidence": {"bug": 0.9}, "reasoning": "crash"})
ONE_DUPLICATE = json.dumps({"duplicates": [{"issue_number": 7, "score": 0.93, "reason": "Same crash"}]})


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


def reply_by_task(mock_llm, **replies):
    """Answer each model task with its own text, or raise it if it is an exception."""

    def respond(messages, **kwargs):
        reply = replies[kwargs["task"]]
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, model="gpt-4o-mini", provider="test-llm")

    mock_llm.complete.side_effect = respond


def existing_issue(number: int, title: str = "Existing issue") -> Issue:
    return Issue(
        number=number,
        title=title,
        body="The app crashes right after launch",
        labels=["bug"],
        url=f"https://github.com/acme/widgets/issues/{number}",
    )


def tasks_called(mock_llm) -> list[str]:
    return [c.kwargs["task"] for c in mock_llm.complete.await_args_list]


@pytest.fixture
def collaborators(mock_git, mock_llm, settings) -> TriageCollaborators:
    """Real collaborators backed by mocked providers."""
    return TriageCollaborators(
        duplicates=DuplicateDetector(mock_git, mock_llm, settings),
        classifier=IssueClassifier(mock_git, mock_llm, settings),
        comments=CommentGenerator(mock_git, mock_llm, settings),
        labels=LabelAssigner(mock_git, mock_llm, settings),
        usage=UsageTracker(),
    )


@pytest.fixture
def factory(collaborators) -> AsyncMock:
    return AsyncMock(return_value=collaborators)


@pytest.fixture
def orchestrator(taxonomy, factory, fast_retry) -> TriageOrchestrator:
    return TriageOrchestrator(taxonomy, factory, retry_policy=fast_retry)


def stages(summary) -> list[TriageStageName]:
    return [e.stage for e in summary.errors]


# -----------------------------------------------------------------------------
# Input validation
# -----------------------------------------------------------------------------


class TestInputValidation:
    """Tests for the initialization stage."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides, missing",
        [
            ({"issue_number": 0}, "issue_number"),
            ({"owner": ""}, "owner"),
            ({"repo": ""}, "repo"),
            ({"token": ""}, "token"),
        ],
    )
    async def test_missing_input_makes_no_calls(
        self, orchestrator, factory, mock_git, mock_llm, triage_request, overrides, missing
    ):
        """Should fail before building collaborators or calling any service."""
        summary = await orchestrator.run(replace(triage_request, **overrides))

        factory.assert_not_awaited()
        assert mock_git.method_calls == []
        mock_llm.complete.assert_not_awaited()
        assert stages(summary) == [TriageStageName.INITIALIZATION]
        assert missing in summary.errors[0].detail
        assert summary.exit_code == 1
        assert summary.failure_count == 1
        assert summary.finalized

    @pytest.mark.asyncio
    async def test_empty_body_is_valid(self, orchestrator, mock_llm, triage_request):
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")
        request = replace(triage_request, body="")

        summary = await orchestrator.run(request)

        assert summary.errors == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", ["", None])
    async def test_empty_title_is_valid(self, orchestrator, mock_llm, triage_request, title):
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(replace(triage_request, title=title))

        assert summary.errors == []

    @pytest.mark.asyncio
    async def test_factory_failure(self, taxonomy, triage_request, fast_retry):
        """Should record a failure to connect as an initialization error."""
        factory = AsyncMock(side_effect=ConnectionError("Bad credentials"))
        orchestrator = TriageOrchestrator(taxonomy, factory, retry_policy=fast_retry)

        summary = await orchestrator.run(triage_request)

        assert stages(summary) == [TriageStageName.INITIALIZATION]
        assert "Bad credentials" in summary.errors[0].detail
        assert summary.exit_code == 1

    @pytest.mark.asyncio
    async def test_taxonomy_loaded_per_run(self, taxonomy, factory, fast_retry, mock_llm, triage_request):
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")
        loader = Mock(return_value=taxonomy)
        orchestrator = TriageOrchestrator(loader, factory, retry_policy=fast_retry)

        summary = await orchestrator.run(triage_request)

        loader.assert_called_once_with()
        assert summary.exit_code == 0

    @pytest.mark.asyncio
    async def test_taxonomy_failure_still_emits_summary(self, factory, fast_retry, mock_git, triage_request):
        """Should record an unloadable taxonomy as an initialization error."""
        loader = Mock(side_effect=ConfigurationError("Taxonomy file not found: labels.yaml"))
        orchestrator = TriageOrchestrator(loader, factory, retry_policy=fast_retry)

        summary = await orchestrator.run(triage_request)

        factory.assert_not_awaited()
        assert mock_git.method_calls == []
        assert stages(summary) == [TriageStageName.INITIALIZATION]
        assert "Taxonomy file not found" in summary.errors[0].detail
        assert summary.finalized
        assert "## Issue Triage Summary" in summary.report
        assert summary.exit_code == 1

    @pytest.mark.asyncio
    async def test_taxonomy_not_loaded_for_invalid_input(self, factory, fast_retry, triage_request):
        loader = Mock()
        orchestrator = TriageOrchestrator(loader, factory, retry_policy=fast_retry)

        summary = await orchestrator.run(replace(triage_request, token=""))

        loader.assert_not_called()
        assert stages(summary) == [TriageStageName.INITIALIZATION]


# -----------------------------------------------------------------------------
# Classification path
# -----------------------------------------------------------------------------


class TestClassificationPath:
    """Tests for runs where no duplicate is found."""

    @pytest.mark.asyncio
    async def test_scenario_clean_run(self, orchestrator, mock_git, mock_llm, triage_request):
        """No duplicates, labels classified, comment generated: the run succeeds."""
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks for reporting this crash!")

        summary = await orchestrator.run(triage_request)

        mock_git.add_labels.assert_awaited_once_with(42, ["bug", "p1", "pending-triage"])
        mock_git.add_comment.assert_awaited_once_with(42, "Thanks for reporting this crash!")
        assert summary.success
        assert summary.success_count == 1
        assert summary.failure_count == 0
        assert summary.skipped_count == 0
        assert summary.exit_code == 0
        assert summary.warnings == []

    @pytest.mark.asyncio
    async def test_duplicate_detection_skipped_when_no_candidates(
        self, orchestrator, mock_git, mock_llm, triage_request
    ):
        """Should classify when open issues exist but none are similar."""
        mock_git.get_issues.return_value = [existing_issue(7)]
        reply_by_task(mock_llm, duplicate='{"duplicates": []}', classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert tasks_called(mock_llm) == ["duplicate", "classifier", "comment"]
        assert summary.exit_code == 0

    @pytest.mark.asyncio
    async def test_classifier_raises(self, orchestrator, collaborators, mock_git, mock_llm, triage_request):
        """Should apply no classified labels and log one classification error."""
        collaborators.classifier.classify = AsyncMock(side_effect=RuntimeError("model exploded"))
        reply_by_task(mock_llm, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        mock_git.add_labels.assert_awaited_once_with(42, ["pending-triage"])
        mock_git.add_comment.assert_awaited_once()
        assert stages(summary) == [TriageStageName.CLASSIFICATION]
        assert "model exploded" in summary.errors[0].detail
        assert summary.failure_count == 1
        assert summary.success_count == 0
        assert summary.exit_code == 1

    @pytest.mark.asyncio
    async def test_classifier_error_result(self, orchestrator, mock_git, mock_llm, triage_request):
        reply_by_task(mock_llm, classifier="I cannot answer that", comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        mock_git.add_labels.assert_awaited_once_with(42, ["pending-triage"])
        assert stages(summary) == [TriageStageName.CLASSIFICATION]
        assert "Failed to parse response" in summary.errors[0].detail

    @pytest.mark.asyncio
    async def test_label_failure_still_acknowledges(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.add_labels.side_effect = PermissionError("Resource not accessible by integration")
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        mock_git.add_comment.assert_awaited_once_with(42, "Thanks!")
        assert stages(summary) == [TriageStageName.LABEL_ASSIGNMENT]

    @pytest.mark.asyncio
    async def test_labels_not_applied(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.add_labels.side_effect = None
        mock_git.add_labels.return_value = []
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert stages(summary) == [TriageStageName.LABEL_ASSIGNMENT]

    @pytest.mark.asyncio
    async def test_fallback_comment_is_a_warning(self, orchestrator, mock_git, mock_llm, triage_request):
        """Should post the fallback comment and keep the run successful."""
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment=ValueError("content filtered"))

        summary = await orchestrator.run(triage_request)

        mock_git.add_comment.assert_awaited_once_with(42, FALLBACK_COMMENT)
        assert summary.errors == []
        assert summary.exit_code == 0
        [warning] = summary.warnings
        assert warning.stage == TriageStageName.ACKNOWLEDGMENT
        assert "content filtered" in warning.detail

    @pytest.mark.asyncio
    async def test_draft_raising_uses_configured_fallback(
        self, orchestrator, collaborators, mock_git, mock_llm, settings, triage_request
    ):
        settings.comments.project_name = "Widgets"
        collaborators.comments.draft = AsyncMock(side_effect=RuntimeError("unexpected"))
        reply_by_task(mock_llm, classifier=CLASSIFIED)

        summary = await orchestrator.run(triage_request)

        posted = mock_git.add_comment.await_args.args[1]
        assert "making Widgets better!" in posted
        assert summary.exit_code == 0
        assert len(summary.warnings) == 1

    @pytest.mark.asyncio
    async def test_acknowledgment_post_failure(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.add_comment.side_effect = PermissionError("issue is locked")
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert stages(summary) == [TriageStageName.ACKNOWLEDGMENT]
        assert mock_git.add_comment.await_count == 1

    @pytest.mark.asyncio
    async def test_acknowledgment_post_retried(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.add_comment.side_effect = [ConnectionError("reset"), None]
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert summary.errors == []
        assert mock_git.add_comment.await_count == 2


# -----------------------------------------------------------------------------
# Duplicate path
# -----------------------------------------------------------------------------


class TestDuplicatePath:
    """Tests for runs where a duplicate is found."""

    @pytest.mark.asyncio
    async def test_scenario_duplicate(self, orchestrator, mock_git, mock_llm, triage_request):
        """One candidate, comment posted: labelled duplicate and never classified."""
        mock_git.get_issues.return_value = [existing_issue(7, "App crashes when starting")]
        reply_by_task(mock_llm, duplicate=ONE_DUPLICATE)

        summary = await orchestrator.run(triage_request)

        assert tasks_called(mock_llm) == ["duplicate"]
        number, comment = mock_git.add_comment.await_args.args
        assert number == 42
        assert "#7: App crashes when starting" in comment
        mock_git.add_labels.assert_awaited_once_with(42, ["duplicate"])
        mock_git.remove_label.assert_awaited_once_with(42, "pending-triage")
        assert summary.success
        assert summary.exit_code == 0

    @pytest.mark.asyncio
    async def test_comment_failure_skips_label(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.get_issues.return_value = [existing_issue(7)]
        mock_git.add_comment.side_effect = PermissionError("issue is locked")
        reply_by_task(mock_llm, duplicate=ONE_DUPLICATE)

        summary = await orchestrator.run(triage_request)

        mock_git.add_labels.assert_not_awaited()
        assert stages(summary) == [TriageStageName.DUPLICATE_COMMENT]
        assert tasks_called(mock_llm) == ["duplicate"]

    @pytest.mark.asyncio
    async def test_comment_not_posted(self, orchestrator, collaborators, mock_git, mock_llm, triage_request):
        mock_git.get_issues.return_value = [existing_issue(7)]
        collaborators.duplicates.post_duplicate_comment = AsyncMock(return_value=False)
        reply_by_task(mock_llm, duplicate=ONE_DUPLICATE)

        summary = await orchestrator.run(triage_request)

        mock_git.add_labels.assert_not_awaited()
        assert stages(summary) == [TriageStageName.DUPLICATE_COMMENT]

    @pytest.mark.asyncio
    async def test_label_failure(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.get_issues.return_value = [existing_issue(7)]
        mock_git.add_labels.side_effect = PermissionError("forbidden")
        reply_by_task(mock_llm, duplicate=ONE_DUPLICATE)

        summary = await orchestrator.run(triage_request)

        assert stages(summary) == [TriageStageName.DUPLICATE_LABEL]
        assert summary.exit_code == 1

    @pytest.mark.asyncio
    async def test_detection_failure_falls_through_to_classification(
        self, orchestrator, mock_git, mock_llm, triage_request
    ):
        """Should log duplicate_detection and still classify the issue."""
        mock_git.get_issues.side_effect = PermissionError("Resource not accessible by integration")
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert tasks_called(mock_llm) == ["classifier", "comment"]
        mock_git.add_labels.assert_awaited_once_with(42, ["bug", "p1", "pending-triage"])
        assert stages(summary) == [TriageStageName.DUPLICATE_DETECTION]


# -----------------------------------------------------------------------------
# Summary and exit status
# -----------------------------------------------------------------------------


class TestSummary:
    """Tests for summary emission."""

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded_as_main(self, orchestrator, triage_request):
        with patch.object(orchestrator, "_triage", AsyncMock(side_effect=KeyError("boom"))):
            summary = await orchestrator.run(triage_request)

        assert stages(summary) == [TriageStageName.MAIN]
        assert summary.exit_code == 1
        assert summary.finalized

    @pytest.mark.asyncio
    async def test_errors_are_chronological(self, orchestrator, mock_git, mock_llm, triage_request):
        mock_git.get_issues.side_effect = PermissionError("forbidden")
        mock_git.add_labels.side_effect = PermissionError("forbidden")
        mock_git.add_comment.side_effect = PermissionError("forbidden")
        reply_by_task(mock_llm, classifier="garbage", comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert stages(summary) == [
            TriageStageName.DUPLICATE_DETECTION,
            TriageStageName.CLASSIFICATION,
            TriageStageName.LABEL_ASSIGNMENT,
            TriageStageName.ACKNOWLEDGMENT,
        ]
        assert all(e.issue_number == 42 for e in summary.errors)

    @pytest.mark.asyncio
    async def test_report_written_once(self, taxonomy, factory, fast_retry, mock_llm, triage_request, tmp_path):
        path = tmp_path / "step-summary.md"
        orchestrator = TriageOrchestrator(taxonomy, factory, retry_policy=fast_retry, step_summary_path=str(path))
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        content = path.read_text()
        assert content.count("## Issue Triage Summary") == 1
        assert summary.report == content

    @pytest.mark.asyncio
    async def test_repeated_run_is_independent(
        self, taxonomy, factory, fast_retry, mock_git, mock_llm, triage_request, tmp_path
    ):
        """Should apply the same labels and emit a fresh summary on every run of the same issue."""
        path = tmp_path / "step-summary.md"
        orchestrator = TriageOrchestrator(taxonomy, factory, retry_policy=fast_retry, step_summary_path=str(path))
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        first = await orchestrator.run(triage_request)
        first_report = first.report
        second = await orchestrator.run(triage_request)

        expected = call(42, ["bug", "p1", "pending-triage"])
        assert mock_git.add_labels.await_args_list == [expected, expected]
        assert first is not second
        assert first.report == first_report
        assert first.errors == []
        assert second.errors == []
        assert first.exit_code == second.exit_code == 0
        assert path.read_text().count("## Issue Triage Summary") == 2

    @pytest.mark.asyncio
    async def test_usage_appended(self, orchestrator, collaborators, mock_llm, triage_request):
        collaborators.usage.record("gpt-4o-mini", "test-llm", "classifier", "", "", 100, 10)
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        assert "### AI Usage" in summary.report
        assert summary.report.index("## Issue Triage Summary") < summary.report.index("### AI Usage")

    @pytest.mark.asyncio
    async def test_collaborators_closed(self, orchestrator, collaborators, mock_llm, triage_request):
        closer = AsyncMock()
        failing_closer = AsyncMock(side_effect=RuntimeError("already closed"))
        collaborators.closers = [failing_closer, closer]
        reply_by_task(mock_llm, classifier=CLASSIFIED, comment="Thanks!")

        summary = await orchestrator.run(triage_request)

        closer.assert_awaited_once()
        assert summary.exit_code == 0


class TestDefaultCollaboratorFactory:
    """Tests for default_collaborator_factory."""

    @pytest.mark.asyncio
    async def test_builds_connected_collaborators(self, settings, triage_request, mock_git, mock_llm):
        with (
            patch("issue_triage.engine.orchestrator.create_git_provider", return_value=mock_git) as git_factory,
            patch("issue_triage.engine.orchestrator.create_llm_provider", return_value=mock_llm) as llm_factory,
        ):
            collaborators = await default_collaborator_factory(settings)(triage_request)

        git_factory.assert_called_once_with(settings, triage_request)
        assert llm_factory.call_args.kwargs["fallback_api_key"] == "ghp_test_token"
        assert llm_factory.call_args.kwargs["usage"] is collaborators.usage
        mock_git.connect.assert_awaited_once()
        assert collaborators.classifier.git is mock_git
        assert collaborators.labels.llm is mock_llm

        await collaborators.aclose()

        mock_llm.close.assert_awaited_once()
        mock_git.disconnect.assert_awaited_once()
