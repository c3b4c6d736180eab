"""
Base class for triage collaborators.

Each stage of a triage run (duplicate detection, classification, comments,
labels) is a collaborator object the orchestrator calls. Collaborators own
the provider calls and prompt building for their stage; the orchestrator
owns control flow and the workflow summary.

Collaborator Lifecycle:
    Collaborators are built once per run by the collaborator factory, bound
    to that run's GitHub provider (repository and token) and language-model
    provider. They hold no per-issue state between calls.

    1. Instantiation: receives git, llm, settings
    2. Calls: the orchestrator awaits stage methods in pipeline order
    3. Failure: stage methods raise; the orchestrator records the failure
       against the stage and moves on

Creating New Collaborators:
    1. Subclass TriageStage
    2. Add the stage's operations as async methods
    3. Use ``_ask_model()`` for model calls so retries, model selection and
       usage accounting stay uniform

Example:
    >>> class SpamFilter(TriageStage):
    ...     async def is_spam(self, title: str, body: str) -> bool:
    ...         answer = await self._ask_model(ModelTask.CLASSIFIER, f"Spam? {title}")
    ...         return answer.strip().lower() == "yes"
"""

from abc import ABC

import structlog

from issue_triage.config.settings import TriageSettings
from issue_triage.enums import ModelTask
from issue_triage.providers.base import GitProvider, LLMProvider
from issue_triage.utils.retry import RetryPolicy, retry_with_backoff

log = structlog.get_logger(__name__)


class TriageStage(ABC):
    """Abstract base class for all triage collaborators.

    Attributes:
        git: Issue-tracker provider bound to the run's repository.
        llm: Language-model provider.
        settings: Triage settings (stage parameters, retry bounds, labels).
    """

    def __init__(
        self,
        git: GitProvider,
        llm: LLMProvider,
        settings: TriageSettings,
    ) -> None:
        """Initialize the collaborator with required dependencies.

        Args:
            git: Issue-tracker provider. Used for listing issues, comments
                and labels.
            llm: Language-model provider. Used for duplicate scoring,
                classification and comment text.
            settings: Configuration object containing stage settings.

        Note:
            Do not store issue-specific state as instance attributes.
        """
        self.git = git
        self.llm = llm
        self.settings = settings

    @property
    def retry_policy(self) -> RetryPolicy:
        return self.settings.retry_policy

    async def _ask_model(
        self,
        task: ModelTask,
        prompt: str,
        *,
        temperature: float | None = None,
        top_p: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a single-message prompt and return the reply text.

        Transient provider failures are retried with the configured backoff;
        the last failure propagates once retries are exhausted.
        """
        model = self.settings.llm.model_for(task)

        async def call() -> str:
            completion = await self.llm.complete(
                [{"role": "user", "content": prompt}],
                model=model,
                temperature=temperature,
                top_p=top_p,
                max_tokens=max_tokens,
                task=task.value,
            )
            return completion.text

        log.debug("model_request", task=task.value, model=model, prompt_length=len(prompt))
        return await retry_with_backoff(call, self.retry_policy, operation_name=f"{task.value}_completion")
