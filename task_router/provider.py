"""HTTP chat-completion client with bearer auth and a hard timeout."""

import asyncio
import time
from typing import Any

import httpx
from loguru import logger

from task_router.errors import ConfigError, ProviderError, ProviderHTTPError, ProviderTimeoutError
from task_router.models import Completion, ProviderClient

DEFAULT_BASE_URL = "https://api.withmartian.com/v1"
DEFAULT_TIMEOUT_MS = 20_000
HEALTH_CHECK_MODEL = "openai/gpt-4o-mini"


class ChatCompletionClient(ProviderClient):
    """OpenAI-compatible /chat/completions client.

    The credential is read once here; a missing key is a startup error, not
    a per-call one. Each call runs under asyncio.wait_for, so an elapsed
    timeout cancels the in-flight request and closes its connection.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ConfigError("ROUTER_API_KEY is required")
        self.api_base = base_url.rstrip("/")
        self.default_timeout_ms = default_timeout_ms
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=None,  # enforced per call below
            transport=transport,
        )

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout_ms: int | None = None,
    ) -> Completion:
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature

        timeout_ms = timeout_ms or self.default_timeout_ms
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.post("/chat/completions", json=payload),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(timeout_ms, model=model) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {model} failed: {e}", model=model) from e
        latency_ms = int((time.monotonic() - start) * 1000)

        try:
            raw: Any = response.json()
        except ValueError:
            raw = response.text

        if not response.is_success:
            raise ProviderHTTPError(
                f"HTTP {response.status_code} from {model}: {_error_message(raw)}",
                status=response.status_code,
                model=model,
            )

        try:
            content = raw["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"No response choices from {model}", model=model) from e
        text = _content_text(content, model)

        usage = raw.get("usage") or {}
        logger.debug(f"Provider: {model} answered in {latency_ms}ms ({len(text)} chars)")
        return Completion(
            text=text,
            status=response.status_code,
            latency_ms=latency_ms,
            raw=raw,
            tokens_in=usage.get("prompt_tokens"),
            tokens_out=usage.get("completion_tokens"),
        )

    async def health_check(self) -> bool:
        """Cheap connectivity probe; never raises."""
        try:
            completion = await self.complete(
                HEALTH_CHECK_MODEL,
                [{"role": "user", "content": "Hello"}],
                max_tokens=5,
            )
        except ProviderError as e:
            logger.warning(f"Health check failed: {e}")
            return False
        return completion.status == 200

    async def aclose(self) -> None:
        await self._client.aclose()


def _content_text(content: Any, model: str) -> str:
    """Message content as a string; content-part lists are joined."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    raise ProviderError(
        f"Unsupported message content from {model}: {type(content).__name__}",
        model=model,
    )


def _error_message(raw: Any) -> str:
    if isinstance(raw, dict):
        error = raw.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    text = str(raw or "").strip()
    return text[:200] or "no body"
