"""Ollama provider for local inference."""

from typing import Any

import httpx
import structlog

from issue_triage.exceptions import ExternalServiceError, ProviderConnectionError
from issue_triage.providers.base import Completion, LLMProvider
from issue_triage.utils.usage import UsageTracker

log = structlog.get_logger(__name__)


class OllamaProvider(LLMProvider):
    """Language-model provider that uses a local Ollama server."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 300.0,
        usage: UsageTracker | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            base_url: Ollama API base URL
            model: Default model (e.g., llama3.1:8b, mistral)
            timeout: Request timeout in seconds
            usage: Tracker that records every completion
            client: Pre-built HTTP client
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.usage = usage
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        max_tokens: int | None = None,
        task: str = "completion",
    ) -> Completion:
        """Call Ollama's chat API without streaming."""
        model = model or self.model
        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if top_p is not None:
            options["top_p"] = top_p
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        log.info("executing_prompt", provider=self.name, model=model, task=task)

        try:
            response = await self.client.post(
                f"{self.base_url}/api/chat",
                json={"model": model, "messages": messages, "stream": False, "options": options},
            )
            response.raise_for_status()
        except httpx.ConnectError as e:
            log.error("ollama_not_running", url=self.base_url)
            raise ProviderConnectionError(
                "Ollama not running. Start it with: ollama serve", provider_url=self.base_url, provider=self.name
            ) from e
        except httpx.TimeoutException as e:
            log.error("ollama_timeout", url=self.base_url, timeout=self.timeout)
            raise ProviderConnectionError(
                f"Request timed out after {self.timeout}s", provider_url=self.base_url, provider=self.name
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.error("prompt_execution_failed", provider=self.name, status_code=status, error=e.response.text)
            raise ExternalServiceError(
                f"Ollama error: {e.response.text[:500]}", status_code=status, response_text=e.response.text
            ) from e

        result = response.json()
        text = result.get("message", {}).get("content") or ""
        completion = Completion(
            text=text,
            model=model,
            provider=self.name,
            input_tokens=result.get("prompt_eval_count"),
            output_tokens=result.get("eval_count"),
        )

        log.info("prompt_executed", provider=self.name, task=task, tokens=completion.output_tokens)
        if self.usage is not None:
            self.usage.record(
                model=model,
                provider=self.name,
                task=task,
                input_text="\n".join(m.get("content", "") for m in messages),
                output_text=text,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
            )
        return completion

    async def close(self) -> None:
        await self.client.aclose()
