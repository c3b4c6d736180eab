"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for every part of a triage run:
the GitHub API, the language-model provider, each pipeline stage, retry
bounds and the label taxonomy. All sections have working defaults, so a run
can be configured entirely through ``TRIAGE_*`` environment variables, for
example ``TRIAGE_LLM__MODEL=gpt-4o-mini``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from issue_triage.config.taxonomy import LabelTaxonomy
from issue_triage.enums import LLMProviderType, ModelTask
from issue_triage.exceptions import ConfigurationError
from issue_triage.utils.retry import DEFAULT_RETRYABLE_MARKERS, RetryPolicy
from issue_triage.utils.usage import ModelCost


class GitHubConfig(BaseModel):
    """GitHub API configuration.

    The token and repository come from the run inputs, not from here.
    """

    base_url: str = Field(default="https://api.github.com", description="GitHub REST API base URL")
    timeout: int = Field(default=30, ge=1, description="Request timeout in seconds")


class LLMConfig(BaseModel):
    """Language-model provider configuration.

    ``model`` is used for every task unless a per-task override is set.
    """

    provider_type: LLMProviderType = Field(
        default=LLMProviderType.OPENAI_COMPATIBLE, description="Type of language-model provider"
    )
    base_url: str = Field(default="https://models.github.ai/inference", description="Provider API base URL")
    api_key: SecretStr | None = Field(default=None, description="API key (falls back to the GitHub token)")
    model: str = Field(default="openai/gpt-4o-mini", description="Default model identifier")
    classifier_model: str | None = Field(default=None, description="Model override for classification")
    comment_model: str | None = Field(default=None, description="Model override for acknowledgment comments")
    duplicate_model: str | None = Field(default=None, description="Model override for duplicate detection")
    timeout: float = Field(default=120.0, gt=0, description="Request timeout in seconds")

    def model_for(self, task: ModelTask) -> str:
        """Resolve the model for a pipeline task."""
        overrides = {
            ModelTask.CLASSIFIER: self.classifier_model,
            ModelTask.COMMENT: self.comment_model,
            ModelTask.DUPLICATE: self.duplicate_model,
        }
        return overrides.get(task) or self.model


class ClassifierConfig(BaseModel):
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, gt=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1)


class CommentConfig(BaseModel):
    """Acknowledgment comment generation."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=1024, ge=1)
    max_comments_to_fetch: int = Field(default=20, ge=0, description="Existing comments included in the prompt")
    max_comments_length: int = Field(default=4000, ge=0, description="Character limit for comments (0 = no limit)")
    project_name: str = Field(default="the project", description="Name used in the fallback comment")


class DuplicateConfig(BaseModel):
    """Duplicate detection behaviour."""

    similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0, description="Minimum score to report")
    batch_size: int = Field(default=10, ge=1, description="Existing issues compared per model call")
    per_page: int = Field(default=100, ge=1, le=100)
    max_pages: int = Field(default=10, ge=1)
    close_after_days: int = Field(
        default=3, ge=0, description="Days a labelled duplicate stays open before close-duplicates closes it"
    )
    max_tokens: int | None = Field(default=2048, ge=1, description="Reply token limit per comparison batch")
    issue_types: list[str] = Field(
        default_factory=lambda: ["bug", "feature"],
        description="Issue types or labels considered for comparison (case-insensitive)",
    )


class CleanupConfig(BaseModel):
    """Scheduled cleanup of duplicate and unanswered issues."""

    pending_response: str = Field(default="pending-response", description="Label for issues awaiting the reporter")
    stale_after_days: int = Field(default=7, ge=0, description="Days without human activity before closing")
    per_page: int = Field(default=100, ge=1, le=100)
    max_pages: int = Field(default=10, ge=1)
    bot_login_patterns: list[str] = Field(
        default_factory=lambda: ["[bot]", "-bot", "github-actions"],
        description="Login substrings whose comments do not count as activity",
    )


class InputLimitsConfig(BaseModel):
    """Prompt input limits; 0 disables trimming."""

    max_title_length: int = Field(default=0, ge=0)
    max_body_length: int = Field(default=0, ge=0)


class RetryConfig(BaseModel):
    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    retryable_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_RETRYABLE_MARKERS))

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            retryable_markers=tuple(self.retryable_markers),
        )


class LabelsConfig(BaseModel):
    """Issue label configuration."""

    pending_triage: str = Field(default="pending-triage", description="Label added to every triaged issue")
    duplicate: str = Field(default="duplicate", description="Label added to suspected duplicates")
    max_labels: int = Field(default=0, ge=0, description="Cap on recommended labels applied (0 = no limit)")
    taxonomy_file: str | None = Field(default=None, description="YAML taxonomy; the bundled default when unset")


class CostConfig(BaseModel):
    """Manual pricing override (USD per 1K tokens) for models not in the cost table."""

    input_per_1k: float | None = Field(default=None, ge=0.0)
    output_per_1k: float | None = Field(default=None, ge=0.0)
    rate: float = Field(default=1.0, ge=0.0)

    def to_model_cost(self) -> ModelCost | None:
        if self.input_per_1k is None or self.output_per_1k is None:
            return None
        return ModelCost(self.input_per_1k, self.output_per_1k, "Custom pricing", self.rate)


class TriageSettings(BaseSettings):
    """Main triage settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRIAGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    comments: CommentConfig = Field(default_factory=CommentConfig)
    duplicates: DuplicateConfig = Field(default_factory=DuplicateConfig)
    input_limits: InputLimitsConfig = Field(default_factory=InputLimitsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    labels: LabelsConfig = Field(default_factory=LabelsConfig)
    costs: CostConfig = Field(default_factory=CostConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self.retry.to_policy()

    def load_taxonomy(self) -> LabelTaxonomy:
        """Load the configured taxonomy, or the bundled default."""
        if self.labels.taxonomy_file:
            return LabelTaxonomy.from_yaml(self.labels.taxonomy_file)
        return LabelTaxonomy.default()

    @classmethod
    def from_yaml(cls, config_path: str) -> TriageSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            TriageSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        # Group 1: variable name, Group 2: optional default value
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
