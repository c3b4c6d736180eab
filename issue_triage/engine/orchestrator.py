"""
Triage orchestrator: runs the pipeline for one newly opened issue.

This module provides the TriageOrchestrator class, the single place that
decides which stage runs next and records how each stage went. The
orchestrator:

- Validates the run inputs before touching any external service
- Routes the issue down the duplicate path or the classification path
- Isolates every stage: a failure is recorded and the pipeline moves on
- Emits exactly one workflow summary per run

Pipeline:
    validate -> detect duplicates
        duplicates found:  duplicate comment -> duplicate label
        otherwise:         classify -> assign labels -> acknowledgment comment
    -> workflow summary -> exit status

Collaborators (duplicate detector, classifier, comment generator, label
assigner) are built by a factory only once the inputs are known to be
valid, so an invalid run makes no external calls at all.

Example:
    >>> orchestrator = TriageOrchestrator(settings.load_taxonomy, default_collaborator_factory(settings))
    >>> summary = await orchestrator.run(request)
    >>> sys.exit(summary.exit_code)
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from issue_triage.config.settings import TriageSettings
from issue_triage.config.taxonomy import LabelTaxonomy
from issue_triage.engine.stages.classification import IssueClassifier
from issue_triage.engine.stages.comments import CommentGenerator
from issue_triage.engine.stages.duplicates import DuplicateDetector
from issue_triage.engine.stages.labels import LabelAssigner
from issue_triage.engine.summary import ErrorLog, WorkflowSummary, create_summary, describe_cause, record_warning
from issue_triage.enums import TriageStageName
from issue_triage.exceptions import InputValidationError
from issue_triage.models.domain import (
    ClassificationFailure,
    ClassificationResult,
    CommentDraft,
    DuplicateCandidate,
    TriageRequest,
)
from issue_triage.providers.factory import create_git_provider, create_llm_provider
from issue_triage.utils.logging_config import bind_run_context
from issue_triage.utils.retry import RetryPolicy, retry_with_backoff
from issue_triage.utils.usage import UsageTracker

log = structlog.get_logger(__name__)


@dataclass
class TriageCollaborators:
    """The stage collaborators for one run, plus what must be closed afterwards."""

    duplicates: DuplicateDetector
    classifier: IssueClassifier
    comments: CommentGenerator
    labels: LabelAssigner
    usage: UsageTracker | None = None
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for close in self.closers:
            try:
                await close()
            except Exception as e:
                log.warning("collaborator_close_failed", error=str(e))


CollaboratorFactory = Callable[[TriageRequest], Awaitable[TriageCollaborators]]
TaxonomySource = LabelTaxonomy | Callable[[], LabelTaxonomy]


def default_collaborator_factory(settings: TriageSettings) -> CollaboratorFactory:
    """Build collaborators backed by GitHub and the configured model provider."""

    async def build(request: TriageRequest) -> TriageCollaborators:
        usage = UsageTracker(settings.costs.to_model_cost())
        git = create_git_provider(settings, request)
        await git.connect()
        llm = create_llm_provider(settings, usage=usage, fallback_api_key=request.token)

        return TriageCollaborators(
            duplicates=DuplicateDetector(git, llm, settings),
            classifier=IssueClassifier(git, llm, settings),
            comments=CommentGenerator(git, llm, settings),
            labels=LabelAssigner(git, llm, settings),
            usage=usage,
            closers=[llm.close, git.disconnect],
        )

    return build


class TriageOrchestrator:
    """Run the triage pipeline for a single issue.

    Attributes:
        taxonomy: Label taxonomy, or a loader called once per run after the
            inputs are validated. A loader failure is an initialization error.
        collaborator_factory: Builds the run's collaborators from validated inputs.
        retry_policy: Backoff used when posting the acknowledgment comment.
        step_summary_path: Where to append the Markdown report (defaults to
            ``GITHUB_STEP_SUMMARY``).
    """

    def __init__(
        self,
        taxonomy: TaxonomySource,
        collaborator_factory: CollaboratorFactory,
        retry_policy: RetryPolicy | None = None,
        step_summary_path: str | None = None,
    ) -> None:
        self.taxonomy = taxonomy
        self.collaborator_factory = collaborator_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.step_summary_path = step_summary_path

    async def run(self, request: TriageRequest) -> WorkflowSummary:
        """Triage one issue and return the finalized summary.

        Never raises: anything escaping a stage is recorded under ``main``.
        """
        summary = WorkflowSummary()
        issue_number = request.issue_number if isinstance(request.issue_number, int) else None
        errors = ErrorLog(summary.errors, issue_number)
        collaborators: TriageCollaborators | None = None

        try:
            missing = request.missing_inputs()
            if missing:
                errors.record(
                    TriageStageName.INITIALIZATION,
                    InputValidationError("Missing or invalid required inputs", missing),
                )
                return summary

            bind_run_context(issue=request.issue_number, repository=request.repository)
            log.info("triage_start", issue=request.issue_number)

            try:
                taxonomy = self._load_taxonomy()
                collaborators = await self.collaborator_factory(request)
            except Exception as e:
                errors.record(TriageStageName.INITIALIZATION, e)
                return summary

            await self._triage(request, taxonomy, collaborators, summary, errors)
        except Exception as e:
            errors.record(TriageStageName.MAIN, e)
        finally:
            if collaborators is not None:
                await collaborators.aclose()
            summary.finalize()
            usage = collaborators.usage if collaborators is not None else None
            create_summary(summary, self.step_summary_path, appendix=usage.render() if usage else None)

        return summary

    def _load_taxonomy(self) -> LabelTaxonomy:
        if isinstance(self.taxonomy, LabelTaxonomy):
            return self.taxonomy
        return self.taxonomy()

    async def _triage(
        self,
        request: TriageRequest,
        taxonomy: LabelTaxonomy,
        collaborators: TriageCollaborators,
        summary: WorkflowSummary,
        errors: ErrorLog,
    ) -> None:
        number = request.issue_number
        title = request.title or ""
        body = request.body or ""

        candidates: list[DuplicateCandidate] = []
        try:
            candidates = await collaborators.duplicates.detect(title, body, number)
        except Exception as e:
            errors.record(TriageStageName.DUPLICATE_DETECTION, e)

        if candidates:
            log.info("duplicate_path", issue=number, duplicates=[c.issue_number for c in candidates])
            await self._mark_duplicate(number, candidates, collaborators, errors)
        else:
            await self._classify_and_label(request, taxonomy, collaborators, summary, errors)

    async def _mark_duplicate(
        self,
        number: int,
        candidates: list[DuplicateCandidate],
        collaborators: TriageCollaborators,
        errors: ErrorLog,
    ) -> None:
        try:
            posted = await collaborators.duplicates.post_duplicate_comment(number, candidates)
        except Exception as e:
            errors.record(TriageStageName.DUPLICATE_COMMENT, e)
            return

        if not posted:
            errors.record(TriageStageName.DUPLICATE_COMMENT, "Duplicate comment was not posted")
            return

        try:
            if not await collaborators.labels.add_duplicate_label(number):
                errors.record(TriageStageName.DUPLICATE_LABEL, "Duplicate label was not added")
        except Exception as e:
            errors.record(TriageStageName.DUPLICATE_LABEL, e)

    async def _classify_and_label(
        self,
        request: TriageRequest,
        taxonomy: LabelTaxonomy,
        collaborators: TriageCollaborators,
        summary: WorkflowSummary,
        errors: ErrorLog,
    ) -> None:
        number = request.issue_number
        body = request.body or ""

        classification: ClassificationResult
        try:
            classification = await collaborators.classifier.classify(request.title or "", body, taxonomy)
        except Exception as e:
            errors.record(TriageStageName.CLASSIFICATION, e)
            classification = ClassificationFailure(error=describe_cause(e))
        else:
            if classification.is_error:
                errors.record(TriageStageName.CLASSIFICATION, classification.error)

        try:
            if not await collaborators.labels.assign_labels(
                number, classification.recommended_labels, taxonomy
            ):
                errors.record(TriageStageName.LABEL_ASSIGNMENT, "Label assignment failed")
        except Exception as e:
            errors.record(TriageStageName.LABEL_ASSIGNMENT, e)

        await self._acknowledge(request, classification, collaborators, summary, errors)

    async def _acknowledge(
        self,
        request: TriageRequest,
        classification: ClassificationResult,
        collaborators: TriageCollaborators,
        summary: WorkflowSummary,
        errors: ErrorLog,
    ) -> None:
        number = request.issue_number
        comments = collaborators.comments

        try:
            draft = await comments.draft(number, request.title or "", request.body or "", classification)
        except Exception as e:
            draft = CommentDraft(text=comments.fallback, generated=False, error=describe_cause(e))

        if not draft.generated:
            record_warning(
                summary,
                TriageStageName.ACKNOWLEDGMENT,
                f"Posted fallback comment: {draft.error or 'generation failed'}",
                number,
            )

        async def post() -> None:
            await comments.post(number, draft.text)

        try:
            await retry_with_backoff(post, self.retry_policy, operation_name="post_acknowledgment")
        except Exception as e:
            errors.record(TriageStageName.ACKNOWLEDGMENT, e)
