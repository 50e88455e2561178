"""
LLM Provider - Chat completion client for product analysis.

The provider protocol keeps the orchestrator independent of the vendor; the
implementation talks to an OpenAI-compatible chat completions endpoint.
"""

import time
from typing import Any, Protocol

import httpx
from structlog import get_logger

from flikkt.exceptions import LLMProviderError
from flikkt.observability import metrics
from flikkt.observability.tracing import get_tracer, set_span_error

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class LLMProvider(Protocol):
    """Anything that can turn a prompt (and optional image) into model text."""

    async def complete(self, prompt: str, image_data: str | None = None) -> str:
        """
        Run one completion.

        Args:
            prompt: Full analysis prompt
            image_data: data:image/... URL; selects the vision variant when present

        Returns:
            Raw message content from the model

        Raises:
            LLMProviderError: Transport failure, non-2xx status, or malformed envelope
        """
        ...


class OpenAIChatProvider:
    """OpenAI chat completions over httpx. Single call, no retries, no streaming."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        max_tokens: int = 1000,
        temperature: float = 0.3,
        timeout_seconds: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    def build_request_body(self, prompt: str, image_data: str | None = None) -> dict[str, Any]:
        if image_data:
            content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_data}},
            ]
        else:
            content = prompt
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    async def complete(self, prompt: str, image_data: str | None = None) -> str:
        body = self.build_request_body(prompt, image_data)
        start = time.perf_counter()
        success = False

        logger.info("llm_call_started", model=self.model, with_image=image_data is not None)
        with tracer.start_as_current_span("llm.chat_completion") as span:
            span.set_attribute("llm.model", self.model)
            span.set_attribute("llm.with_image", image_data is not None)
            try:
                content = await self._post(body)
                success = True
                span.set_attribute("llm.response_length", len(content))
                logger.info("llm_call_completed", model=self.model, response_length=len(content))
                return content
            except LLMProviderError as exc:
                set_span_error(span, exc)
                raise
            finally:
                metrics.record_llm_call(self.model, success, time.perf_counter() - start)

    async def _post(self, body: dict[str, Any]) -> str:
        try:
            response = await self.http_client.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except httpx.HTTPStatusError as exc:
            logger.error(
                "llm_call_failed",
                model=self.model,
                status=exc.response.status_code,
                text=exc.response.text[:500],
            )
            raise LLMProviderError(
                f"{exc.response.status_code} {exc.response.reason_phrase}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("llm_call_transport_error", model=self.model, error=str(exc))
            raise LLMProviderError(f"Transport error: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("llm_call_bad_envelope", model=self.model, error=str(exc))
            raise LLMProviderError(f"Unexpected completion payload: {exc}") from exc

        if not isinstance(content, str):
            logger.error("llm_call_bad_envelope", model=self.model, error="content is not text")
            raise LLMProviderError("Completion content is not text")
        return content

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
