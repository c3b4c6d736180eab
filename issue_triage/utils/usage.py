"""
Language-model usage accounting.

Keeps a per-run log of model calls with estimated token counts and cost so
the run can print what it spent next to the workflow summary. Prices are
USD per 1K tokens and matched against model IDs by prefix, so
``gpt-4o-2024-08-06`` resolves to the ``gpt-4o`` entry.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModelCost:
    """Model pricing information (per 1K tokens)."""

    input_per_1k: float
    output_per_1k: float
    display_name: str
    cost_rate: float = 1.0
    """Relative cost multiplier against Claude Sonnet 4 (1.0)."""


# Prices as of early 2026; update when providers change pricing.
COST_TABLE: dict[str, ModelCost] = {
    "us.anthropic.claude-sonnet-4": ModelCost(0.003, 0.015, "Claude Sonnet 4 (Bedrock)", 1.0),
    "anthropic.claude-sonnet-4": ModelCost(0.003, 0.015, "Claude Sonnet 4", 1.0),
    "claude-sonnet-4": ModelCost(0.003, 0.015, "Claude Sonnet 4", 1.0),
    "anthropic.claude-opus-4": ModelCost(0.015, 0.075, "Claude Opus 4", 5.0),
    "claude-opus-4": ModelCost(0.015, 0.075, "Claude Opus 4", 5.0),
    "claude-3-5-haiku": ModelCost(0.0008, 0.004, "Claude Haiku 3.5", 0.27),
    "gpt-4o-mini": ModelCost(0.00015, 0.0006, "GPT-4o mini", 0.05),
    "gpt-4o": ModelCost(0.0025, 0.01, "GPT-4o", 0.83),
    "gpt-4.1-mini": ModelCost(0.0004, 0.0016, "GPT-4.1 mini", 0.13),
    "gpt-4.1": ModelCost(0.002, 0.008, "GPT-4.1", 0.67),
    "o3-mini": ModelCost(0.0011, 0.0044, "o3-mini", 0.37),
    "llama-3.3": ModelCost(0.0001, 0.0004, "Llama 3.3", 0.03),
    "mistral-large": ModelCost(0.002, 0.006, "Mistral Large", 0.67),
    "mistral-small": ModelCost(0.0002, 0.0006, "Mistral Small", 0.07),
    "deepseek-v3": ModelCost(0.00027, 0.0011, "DeepSeek V3", 0.09),
    "deepseek-r1": ModelCost(0.00055, 0.0022, "DeepSeek R1", 0.18),
    "github/": ModelCost(0.0, 0.0, "GitHub Models (free tier)", 0.0),
}


def get_model_cost(
    model_id: str,
    override: ModelCost | None = None,
) -> ModelCost | None:
    """Return pricing for ``model_id``.

    An explicit ``override`` wins; otherwise an exact match, then the
    longest matching prefix. Returns None for unknown models.
    """
    if override is not None:
        return override
    if model_id in COST_TABLE:
        return COST_TABLE[model_id]

    prefixes = sorted((key for key in COST_TABLE if model_id.startswith(key)), key=len, reverse=True)
    return COST_TABLE[prefixes[0]] if prefixes else None


def estimate_tokens(text: str) -> int:
    """Rough token count (~4 characters per token). Not meant for billing."""
    return math.ceil(len(text or "") / 4)


def list_known_models() -> list[tuple[str, ModelCost]]:
    return sorted(COST_TABLE.items())


@dataclass(frozen=True)
class UsageRecord:
    """One model call."""

    model: str
    provider: str
    task: str
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class UsageTracker:
    """Collects model usage for a single run.

    One tracker is created per run and handed to every provider that calls
    a model; nothing is shared between runs.
    """

    def __init__(self, cost_override: ModelCost | None = None) -> None:
        self.cost_override = cost_override
        self._records: list[UsageRecord] = []

    @property
    def records(self) -> tuple[UsageRecord, ...]:
        return tuple(self._records)

    @property
    def total_cost(self) -> float:
        return sum(r.estimated_cost_usd for r in self._records)

    def record(
        self,
        model: str,
        provider: str,
        task: str,
        input_text: str,
        output_text: str,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
    ) -> UsageRecord:
        """Record a model call.

        Token counts reported by the provider are used when given;
        otherwise they are estimated from the text.
        """
        tokens_in = input_tokens if input_tokens is not None else estimate_tokens(input_text)
        tokens_out = output_tokens if output_tokens is not None else estimate_tokens(output_text)
        cost = get_model_cost(model, self.cost_override)

        estimated = 0.0
        if cost:
            estimated = (tokens_in / 1000) * cost.input_per_1k + (tokens_out / 1000) * cost.output_per_1k

        record = UsageRecord(
            model=model,
            provider=provider,
            task=task,
            input_tokens=tokens_in,
            output_tokens=tokens_out,
            estimated_cost_usd=estimated,
        )
        self._records.append(record)

        log.info(
            "model_usage",
            model=cost.display_name if cost else model,
            provider=provider,
            task=task,
            input_tokens=tokens_in,
            output_tokens=tokens_out,
            estimated_cost_usd=round(estimated, 6) if cost else None,
        )
        return record

    def render(self) -> str:
        """Render a usage table with totals."""
        if not self._records:
            return "No AI usage recorded.\n"

        lines = [
            "### AI Usage",
            "",
            "| Task | Model | Provider | Tokens (in/out) | Est. Cost |",
            "|------|-------|----------|-----------------|-----------|",
        ]
        total_in = total_out = 0
        for r in self._records:
            cost = get_model_cost(r.model, self.cost_override)
            name = cost.display_name if cost else r.model
            lines.append(
                f"| {r.task} | {name} | {r.provider} | {r.input_tokens}/{r.output_tokens} "
                f"| ${r.estimated_cost_usd:.6f} |"
            )
            total_in += r.input_tokens
            total_out += r.output_tokens

        lines.append(f"| **Total** | | | {total_in}/{total_out} | ${self.total_cost:.6f} |")
        return "\n".join(lines) + "\n"
