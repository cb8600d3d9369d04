from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Callable, Literal, Mapping, Sequence

import httpx

from ..core import metrics
from ..core.config import AgentRuntimeSettings, LLMSettings
from ..core.logging import get_logger
from ..tools.base import ToolDefinition
from .messages import ChatMessage, LLMResponse
from .providers import ProviderAdapter, build_adapter

logger = get_logger(name=__name__)

__all__ = [
    "LLMClient",
    "LLMError",
    "LLMErrorCode",
    "InstrumentationHook",
    "RETRY_STATUS_CODES",
    "status_message",
]

LLMErrorCode = Literal["llm_request_failed", "llm_timeout", "llm_network_error"]
InstrumentationHook = Callable[[str, dict[str, Any]], None]

RETRY_STATUS_CODES = frozenset({408, 429})
TIMEOUT_MESSAGE = "LLM request timed out"


class LLMError(RuntimeError):
    """Oracle request failure after the retry budget was spent."""

    def __init__(
        self,
        message: str,
        *,
        code: LLMErrorCode,
        status: int | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.provider = provider


def status_message(status: int) -> str:
    if status == 401:
        return "Invalid API key. Please check your AI settings."
    if status == 429:
        return "Rate limit exceeded. Please try again later."
    if status >= 500:
        return "AI provider service error. Please try again."
    return f"AI request failed (status {status})."


def _is_retryable_status(status: int) -> bool:
    return status in RETRY_STATUS_CODES or status >= 500


class LLMClient:
    """Single entry point for oracle calls across provider wire formats.

    Each attempt is bounded by ``runtime.llm_timeout_seconds``. Timeouts,
    network errors and retryable statuses (408, 429, 5xx) are retried up to
    ``runtime.retry_max`` times with exponential backoff and jitter.
    """

    def __init__(
        self,
        settings: LLMSettings,
        runtime: AgentRuntimeSettings,
        *,
        client: httpx.AsyncClient | None = None,
        adapter: ProviderAdapter | None = None,
        instrumentation_hooks: Sequence[InstrumentationHook] = (),
    ) -> None:
        self._settings = settings
        self._runtime = runtime
        self._client = client
        self._adapter = adapter or build_adapter(settings)
        self._hooks: list[InstrumentationHook] = list(instrumentation_hooks)

    @property
    def provider(self) -> str:
        return self._adapter.provider

    @property
    def model(self) -> str:
        return self._settings.model

    async def call(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> LLMResponse:
        body = self._adapter.build_body(messages, tools)
        payload = await self.fetch_with_retry(self._adapter.endpoint, self._adapter.headers(), body)
        return self._adapter.parse_response(payload)

    async def fetch_with_retry(
        self,
        url: str,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
    ) -> dict[str, Any]:
        if self._client is not None:
            return await self._fetch_with_retry(self._client, url, headers, body)
        async with httpx.AsyncClient() as client:
            return await self._fetch_with_retry(client, url, headers, body)

    async def _fetch_with_retry(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
    ) -> dict[str, Any]:
        max_retries = self._runtime.retry_max
        timeout = self._runtime.llm_timeout_seconds
        attempt = 0
        while True:
            start = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    client.post(url, headers=dict(headers), json=dict(body), timeout=timeout),
                    timeout=timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                self._emit_call(attempt, None, start, outcome="timeout")
                if attempt < max_retries:
                    await self._sleep_before_retry(attempt, reason="timeout")
                    attempt += 1
                    continue
                metrics.record_llm_request(provider=self.provider, outcome="timeout")
                raise LLMError(TIMEOUT_MESSAGE, code="llm_timeout", provider=self.provider) from exc
            except httpx.RequestError as exc:
                self._emit_call(attempt, None, start, outcome="network_error")
                if attempt < max_retries:
                    await self._sleep_before_retry(attempt, reason="network_error")
                    attempt += 1
                    continue
                metrics.record_llm_request(provider=self.provider, outcome="network_error")
                raise LLMError(
                    f"Could not reach the AI provider: {exc}",
                    code="llm_network_error",
                    provider=self.provider,
                ) from exc

            status = response.status_code
            self._emit_call(attempt, status, start, outcome="success" if response.is_success else "error")
            if response.is_success:
                try:
                    payload = response.json()
                except ValueError as exc:
                    metrics.record_llm_request(provider=self.provider, outcome="invalid_response")
                    raise LLMError(
                        "Invalid response from AI provider.",
                        code="llm_request_failed",
                        status=status,
                        provider=self.provider,
                    ) from exc
                metrics.record_llm_request(provider=self.provider, outcome="success")
                return payload if isinstance(payload, dict) else {"data": payload}

            if _is_retryable_status(status) and attempt < max_retries:
                await self._sleep_before_retry(attempt, reason=f"status_{status}")
                attempt += 1
                continue

            logger.warning(
                "llm_request_failed",
                provider=self.provider,
                status=status,
                attempts=attempt + 1,
                detail=response.text[:500],
            )
            metrics.record_llm_request(provider=self.provider, outcome="error")
            raise LLMError(status_message(status), code="llm_request_failed", status=status, provider=self.provider)

    def backoff_delay(self, attempt: int) -> float:
        """Deterministic part of the delay before retry ``attempt`` (0-based)."""
        base = self._runtime.retry_base_seconds * (2**attempt)
        return min(self._runtime.retry_max_delay_seconds, base)

    def _backoff_with_jitter(self, attempt: int) -> float:
        delay = self.backoff_delay(attempt)
        jitter = random.uniform(0.0, delay * self._runtime.retry_jitter_ratio)
        return max(0.0, delay + jitter)

    async def _sleep_before_retry(self, attempt: int, *, reason: str) -> None:
        delay = self._backoff_with_jitter(attempt)
        logger.info("llm_retry_scheduled", provider=self.provider, attempt=attempt + 1, reason=reason, delay=delay)
        metrics.record_llm_retry(provider=self.provider, reason=reason)
        self._emit_instrumentation("llm_retry", {"attempt": attempt + 1, "reason": reason, "delay": delay})
        await asyncio.sleep(delay)

    def _emit_call(self, attempt: int, status: int | None, start: float, *, outcome: str) -> None:
        self._emit_instrumentation(
            "llm_attempt",
            {
                "provider": self.provider,
                "model": self.model,
                "attempt": attempt + 1,
                "status": status,
                "outcome": outcome,
                "duration_ms": round((time.perf_counter() - start) * 1000, 3),
            },
        )

    def _emit_instrumentation(self, event: str, payload: dict[str, Any]) -> None:
        for hook in list(self._hooks):
            try:
                hook(event, dict(payload))
            except Exception as exc:  # pragma: no cover - instrumentation must never break a request
                logger.warning("llm_instrumentation_failed", hook=repr(hook), error=str(exc))
