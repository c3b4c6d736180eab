"""Acknowledgment comments - a friendly note posted on every triaged issue."""

import structlog

from issue_triage.engine.stages.base import TriageStage
from issue_triage.enums import ModelTask
from issue_triage.exceptions import CommentGenerationError
from issue_triage.models.domain import ClassificationResult, CommentDraft
from issue_triage.utils.retry import retry_with_backoff
from issue_triage.utils.text import sanitize_prompt_input, truncate_text

log = structlog.get_logger(__name__)

NO_COMMENTS = "(No comments yet)"
COMMENTS_UNAVAILABLE = "(Unable to fetch comments)"
COMMENTS_TRIMMED = "\n\n[Comments truncated for length]"


def fallback_comment(project_name: str = "the project") -> str:
    """Static acknowledgment used when the model cannot produce one."""
    return (
        "Thank you for opening this issue! 🙏\n\n"
        "We've received your report and our automated triage system has analyzed it. "
        "A maintainer will review it shortly.\n\n"
        f"We appreciate your contribution to making {project_name} better!"
    )


FALLBACK_COMMENT = fallback_comment()


def build_comment_prompt(title: str, body: str, comments: str, labels: str) -> str:
    return f"""You are a friendly GitHub bot. Generate a welcoming acknowledgment comment for a newly triaged issue.

===== ISSUE TITLE =====
{title}
===== END ISSUE TITLE =====

===== ISSUE BODY =====
{body or "(No description provided)"}
===== END ISSUE BODY =====

===== EXISTING COMMENTS =====
{comments}
===== END EXISTING COMMENTS =====

===== ASSIGNED LABELS =====
{labels}
===== END LABELS =====

TASK:
Write a friendly acknowledgment comment that:
1. Thanks the user for opening the issue
2. Briefly acknowledges what the issue is about, considering any discussion
3. Lets them know a maintainer will take a look

Provide the comment text directly (no JSON wrapper needed)."""


class CommentGenerator(TriageStage):
    """Write and post the acknowledgment comment."""

    @property
    def fallback(self) -> str:
        return fallback_comment(self.settings.comments.project_name)

    async def fetch_comment_context(self, issue_number: int) -> str:
        """Existing discussion formatted for the prompt. Never raises."""
        config = self.settings.comments
        if config.max_comments_to_fetch == 0:
            return NO_COMMENTS

        async def fetch():
            return await self.git.get_comments(issue_number, limit=config.max_comments_to_fetch)

        try:
            comments = await retry_with_backoff(fetch, self.retry_policy, operation_name="fetch_comments")
        except Exception as e:
            log.warning("comments_fetch_failed", issue=issue_number, error=str(e))
            return COMMENTS_UNAVAILABLE

        if not comments:
            return NO_COMMENTS

        formatted = "\n\n---\n\n".join(
            f"Comment {index} by @{comment.author or 'unknown'}:\n{comment.body}"
            for index, comment in enumerate(comments, start=1)
        )
        if config.max_comments_length and len(formatted) > config.max_comments_length:
            return formatted[: config.max_comments_length] + COMMENTS_TRIMMED
        return formatted

    async def generate(
        self,
        issue_number: int,
        title: str,
        body: str,
        classification: ClassificationResult,
    ) -> str:
        """Generate acknowledgment text with the model.

        Raises:
            CommentGenerationError: If the model call fails or returns nothing
        """
        limits = self.settings.input_limits
        comments = await self.fetch_comment_context(issue_number)
        prompt = build_comment_prompt(
            sanitize_prompt_input(title, limits.max_title_length),
            sanitize_prompt_input(body, limits.max_body_length),
            comments,
            ", ".join(classification.recommended_labels) or self.settings.labels.pending_triage,
        )

        config = self.settings.comments
        try:
            reply = await self._ask_model(
                ModelTask.COMMENT,
                prompt,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except Exception as e:
            raise CommentGenerationError(str(e), provider=self.llm.name, task=ModelTask.COMMENT.value) from e

        text = reply.strip()
        if not text:
            raise CommentGenerationError("Model returned an empty comment", provider=self.llm.name)

        log.info("comment_generated", issue=issue_number, length=len(text))
        return text

    async def draft(
        self,
        issue_number: int,
        title: str,
        body: str,
        classification: ClassificationResult,
    ) -> CommentDraft:
        """Generated text, or the fallback with the reason generation failed."""
        try:
            text = await self.generate(issue_number, title, body, classification)
        except Exception as e:
            log.warning("comment_generation_fallback", issue=issue_number, error=str(e))
            return CommentDraft(text=self.fallback, generated=False, error=truncate_text(str(e), 500))
        return CommentDraft(text=text, generated=True)

    async def post(self, issue_number: int, text: str) -> None:
        await self.git.add_comment(issue_number, text)
        log.info("acknowledgment_posted", issue=issue_number)
