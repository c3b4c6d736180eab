"""Tests for issue_triage/config/settings.py - settings loading."""

import os

import pytest

from issue_triage.config.settings import CostConfig, LLMConfig, TriageSettings
from issue_triage.enums import LLMProviderType, ModelTask
from issue_triage.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove TRIAGE_* variables that would leak into settings."""
    for key in list(os.environ):
        if key.startswith("TRIAGE_"):
            monkeypatch.delenv(key)


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self):
        settings = TriageSettings()

        assert settings.llm.provider_type == LLMProviderType.OPENAI_COMPATIBLE
        assert settings.classifier.temperature == 0.3
        assert settings.classifier.top_p == 0.9
        assert settings.comments.temperature == 0.7
        assert settings.duplicates.similarity_threshold == 0.8
        assert settings.duplicates.batch_size == 10
        assert settings.labels.pending_triage == "pending-triage"
        assert settings.input_limits.max_body_length == 0
        assert settings.duplicates.max_tokens == 2048
        assert settings.duplicates.close_after_days == 3
        assert settings.cleanup.pending_response == "pending-response"
        assert settings.cleanup.stale_after_days == 7
        assert "[bot]" in settings.cleanup.bot_login_patterns

    def test_retry_policy(self):
        policy = TriageSettings(retry={"max_retries": 5, "base_delay": 0.5}).retry_policy
        assert policy.max_retries == 5
        assert policy.base_delay == 0.5
        assert "ThrottlingException" in policy.retryable_markers

    def test_default_taxonomy(self):
        assert "bug" in TriageSettings().load_taxonomy()


class TestModelSelection:
    def test_task_override(self):
        llm = LLMConfig(model="gpt-4o-mini", classifier_model="gpt-4o")
        assert llm.model_for(ModelTask.CLASSIFIER) == "gpt-4o"
        assert llm.model_for(ModelTask.COMMENT) == "gpt-4o-mini"


class TestCostOverride:
    def test_requires_both_prices(self):
        assert CostConfig(input_per_1k=0.001).to_model_cost() is None

    def test_builds_model_cost(self):
        cost = CostConfig(input_per_1k=0.001, output_per_1k=0.002).to_model_cost()
        assert cost.input_per_1k == 0.001
        assert cost.output_per_1k == 0.002


class TestEnvironment:
    def test_nested_env_vars(self, monkeypatch):
        """Should read TRIAGE_SECTION__FIELD variables."""
        monkeypatch.setenv("TRIAGE_LLM__MODEL", "llama3.1:8b")
        monkeypatch.setenv("TRIAGE_LLM__PROVIDER_TYPE", "ollama")
        monkeypatch.setenv("TRIAGE_DUPLICATES__SIMILARITY_THRESHOLD", "0.9")

        settings = TriageSettings()

        assert settings.llm.model == "llama3.1:8b"
        assert settings.llm.provider_type == LLMProviderType.OLLAMA
        assert settings.duplicates.similarity_threshold == 0.9

    def test_api_key_is_secret(self, monkeypatch):
        monkeypatch.setenv("TRIAGE_LLM__API_KEY", "sk-secret")
        settings = TriageSettings()
        assert settings.llm.api_key.get_secret_value() == "sk-secret"
        assert "sk-secret" not in repr(settings)


class TestFromYaml:
    """Tests for YAML loading with interpolation."""

    def test_load(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MODELS_KEY", "sk-from-env")
        path = tmp_path / "triage.yaml"
        path.write_text(
            "llm:\n"
            "  base_url: https://api.openai.com/v1\n"
            "  api_key: ${MODELS_KEY}\n"
            "  model: ${TRIAGE_TEST_MODEL:-gpt-4.1-mini}\n"
            "labels:\n"
            "  max_labels: 4\n"
        )

        settings = TriageSettings.from_yaml(str(path))

        assert settings.llm.api_key.get_secret_value() == "sk-from-env"
        assert settings.llm.model == "gpt-4.1-mini"
        assert settings.labels.max_labels == 4

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert TriageSettings.from_yaml(str(path)).retry.max_retries == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            TriageSettings.from_yaml(str(tmp_path / "nope.yaml"))

    def test_missing_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("UNSET_TRIAGE_VAR", raising=False)
        path = tmp_path / "triage.yaml"
        path.write_text("llm:\n  api_key: ${UNSET_TRIAGE_VAR}\n")
        with pytest.raises(ConfigurationError, match="UNSET_TRIAGE_VAR"):
            TriageSettings.from_yaml(str(path))

    def test_comment_lines_not_interpolated(self, tmp_path):
        path = tmp_path / "triage.yaml"
        path.write_text("# api_key: ${NOT_SET_ANYWHERE}\nretry:\n  max_retries: 1\n")
        assert TriageSettings.from_yaml(str(path)).retry.max_retries == 1

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "triage.yaml"
        path.write_text("duplicates:\n  similarity_threshold: 2.5\n")
        with pytest.raises(ConfigurationError, match="Failed to validate"):
            TriageSettings.from_yaml(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "triage.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigurationError, match="YAML object"):
            TriageSettings.from_yaml(str(path))
