"""OpenAI-compatible chat completions provider.

Works with any server implementing ``POST /chat/completions``: OpenAI,
GitHub Models, Groq, OpenRouter, DeepSeek, vLLM, LMStudio and others.
"""

from typing import Any

import httpx
import structlog

from issue_triage.exceptions import ExternalServiceError, ProviderConnectionError, RateLimitError
from issue_triage.providers.base import Completion, LLMProvider
from issue_triage.utils.usage import UsageTracker

log = structlog.get_logger(__name__)


def _error_detail(response: httpx.Response) -> str:
    """Pull the provider's error message out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if error:
        return str(error)
    return response.text[:500]


class OpenAICompatibleProvider(LLMProvider):
    """Language-model provider for OpenAI-compatible API servers."""

    name = "openai-compatible"

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        timeout: float = 120.0,
        usage: UsageTracker | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize OpenAI-compatible provider.

        Args:
            base_url: API base URL (e.g., https://models.github.ai/inference)
            model: Default model identifier
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
            usage: Tracker that records every completion
            client: Pre-built HTTP client (tests inject a mock transport here)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.usage = usage

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

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
        """Call the chat completions endpoint."""
        model = model or self.model
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if top_p is not None:
            payload["top_p"] = top_p
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        log.info("executing_prompt", provider=self.name, model=model, task=task)

        try:
            response = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.ConnectError as e:
            log.error("openai_compatible_not_reachable", url=self.base_url)
            raise ProviderConnectionError(
                "OpenAI-compatible server not reachable", provider_url=self.base_url, provider=self.name
            ) from e
        except httpx.TimeoutException as e:
            log.error("openai_compatible_timeout", url=self.base_url, timeout=self.timeout)
            raise ProviderConnectionError(
                f"Request timed out after {self.timeout}s", provider_url=self.base_url, provider=self.name
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            log.error("prompt_execution_failed", provider=self.name, status_code=status, error=detail)
            error_cls = RateLimitError if status == 429 else ExternalServiceError
            raise error_cls(f"API error: {detail}", status_code=status, response_text=e.response.text) from e

        result = response.json()
        choices = result.get("choices") or []
        if not choices:
            log.error("no_choices_in_response", provider=self.name, model=model)
            raise ExternalServiceError("No choices returned from API")

        text = choices[0].get("message", {}).get("content") or ""
        usage = result.get("usage") or {}
        completion = Completion(
            text=text,
            model=result.get("model") or model,
            provider=self.name,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
        )

        log.info("prompt_executed", provider=self.name, task=task, output_length=len(text))
        if self.usage is not None:
            prompt_text = "\n".join(m.get("content", "") for m in messages)
            self.usage.record(
                model=model,
                provider=self.name,
                task=task,
                input_text=prompt_text,
                output_text=text,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
            )
        return completion

    async def close(self) -> None:
        await self.client.aclose()
