"""Enumerations for pipeline stages and provider types."""

from enum import Enum


class TriageStageName(str, Enum):
    """Pipeline stages an error can be attributed to.

    Only INITIALIZATION and MAIN end a run early; every other stage is
    caught where it happens and the pipeline moves on. The cleanup stages
    are recorded once per issue a cleanup job failed to handle.
    """

    INITIALIZATION = "initialization"
    DUPLICATE_DETECTION = "duplicate_detection"
    DUPLICATE_COMMENT = "duplicate_comment"
    DUPLICATE_LABEL = "duplicate_label"
    CLASSIFICATION = "classification"
    LABEL_ASSIGNMENT = "label_assignment"
    ACKNOWLEDGMENT = "acknowledgment"
    DUPLICATE_CLEANUP = "duplicate_cleanup"
    STALE_CLEANUP = "stale_cleanup"
    MAIN = "main"

    def __str__(self) -> str:
        return self.value

    @property
    def is_fatal(self) -> bool:
        """Whether an error in this stage terminates the run."""
        return self in (TriageStageName.INITIALIZATION, TriageStageName.MAIN)


class LLMProviderType(str, Enum):
    """Language-model backends supported for classification and comments.

    - openai-compatible: Any OpenAI-compatible chat completions endpoint
      (OpenAI, GitHub Models, Groq, OpenRouter, DeepSeek, vLLM, ...)
    - ollama: Local Ollama server
    """

    OPENAI_COMPATIBLE = "openai-compatible"
    OLLAMA = "ollama"

    def __str__(self) -> str:
        return self.value


class ModelTask(str, Enum):
    """Pipeline tasks that call the language model."""

    CLASSIFIER = "classifier"
    COMMENT = "comment"
    DUPLICATE = "duplicate"

    def __str__(self) -> str:
        return self.value
