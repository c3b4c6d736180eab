"""Classification - recommends taxonomy labels for an issue."""

import json

import structlog

from issue_triage.config.taxonomy import LabelTaxonomy
from issue_triage.engine.stages.base import TriageStage
from issue_triage.enums import ModelTask
from issue_triage.models.domain import Classification, ClassificationFailure, ClassificationResult
from issue_triage.utils.text import extract_json_from_text, sanitize_prompt_input

log = structlog.get_logger(__name__)


def build_classification_prompt(title: str, body: str, taxonomy: dict[str, list[str]]) -> str:
    taxonomy_json = json.dumps(taxonomy, indent=2)

    return f"""You are a GitHub issue classifier.

Issue title:
{title}

Issue body:
{body or "(No description provided)"}

Available label taxonomy:
{taxonomy_json}

Classify this issue by recommending appropriate labels from the taxonomy above.

Preferred output format:
{{
  "labels": ["label1", "label2", ...],
  "confidence": {{"label1": 0.95, "label2": 0.87, ...}},
  "reasoning": "Brief explanation of label choices"
}}

Guidance:
- Recommend labels from the taxonomy that fit the issue content.
- You may recommend as many labels as you think are appropriate.
- Include your reasoning so reviewers understand your choices."""


def parse_classification_response(text: str) -> ClassificationResult:
    """Parse a model reply into a classification.

    JSON wrapped in prose or markdown fences is accepted. Anything that
    does not parse to an object yields a ``ClassificationFailure``.

    Example:
        >>> parse_classification_response('Sure! {"labels": ["bug"], "reasoning": "crash"}').labels
        ('bug',)
    """
    try:
        data = json.loads(extract_json_from_text(text) or text)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        labels = data.get("labels") or []
        if not isinstance(labels, list):
            raise ValueError("'labels' must be a list")
        confidence = data.get("confidence") or {}
        if not isinstance(confidence, dict):
            confidence = {}

        return Classification(
            labels=tuple(str(label) for label in labels),
            confidence={str(k): float(v) for k, v in confidence.items() if isinstance(v, int | float)},
            reasoning=str(data.get("reasoning") or ""),
        )
    except ValueError as e:
        log.error("classification_parse_failed", error=str(e))
        return ClassificationFailure(error=f"Failed to parse response: {e}")


class IssueClassifier(TriageStage):
    """Classify issues into the label taxonomy with the language model."""

    async def classify(self, title: str, body: str, taxonomy: LabelTaxonomy) -> ClassificationResult:
        """Recommend labels for an issue.

        Provider failures (after retries) and unparsable replies are returned
        as ``ClassificationFailure`` rather than raised.
        """
        limits = self.settings.input_limits
        if limits.max_title_length and len(title) > limits.max_title_length:
            log.warning("title_trimmed", length=len(title), limit=limits.max_title_length)
        if limits.max_body_length and len(body) > limits.max_body_length:
            log.warning("body_trimmed", length=len(body), limit=limits.max_body_length)

        prompt = build_classification_prompt(
            sanitize_prompt_input(title, limits.max_title_length),
            sanitize_prompt_input(body, limits.max_body_length),
            taxonomy.to_dict(),
        )

        log.info("classifying_issue", provider=self.llm.name)
        config = self.settings.classifier
        try:
            reply = await self._ask_model(
                ModelTask.CLASSIFIER,
                prompt,
                temperature=config.temperature,
                top_p=config.top_p,
                max_tokens=config.max_tokens,
            )
        except Exception as e:
            log.error("classification_request_failed", provider=self.llm.name, error=str(e))
            return ClassificationFailure(error=f"{self.llm.name} API error after retries: {e}")

        result = parse_classification_response(reply)
        if not result.is_error:
            log.info("issue_classified", labels=result.recommended_labels)
        return result
