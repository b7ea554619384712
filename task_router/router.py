"""Router: cache → policy → primary → (repair) → fallback → degrade."""

import asyncio
import json
import random
import time
from typing import Any, Callable

from loguru import logger

from task_router.cache import ResponseCache, make_key
from task_router.failover import FailoverChain
from task_router.models import (
    DEGRADED_MODEL,
    Attempt,
    CallRequest,
    CallResult,
    Expect,
    Mode,
    ProviderClient,
    SchemaName,
)
from task_router.policy import PolicyEngine
from task_router.repair import RepairCoordinator
from task_router.telemetry import CallTelemetry


def estimate_tokens(messages: list[dict[str, Any]]) -> int:
    """Rough input size: four characters per token."""
    return sum(len(str(msg.get("content", ""))) for msg in messages) // 4


def _plain(value: Any) -> str:
    return str(getattr(value, "value", value))


class Router:
    """Routes one task/prompt to an upstream model and validates the answer.

    Each call runs sequentially: cache check, policy resolution, primary
    attempt with at most one repair, then the fallback model with the same
    sub-flow. If neither model answers, a degraded placeholder is returned
    instead of raising. Optional shadow calls to the fallback model run as
    background tasks and only feed telemetry.
    """

    def __init__(
        self,
        policy: PolicyEngine,
        provider: ProviderClient,
        cache: ResponseCache | None = None,
        telemetry: CallTelemetry | None = None,
        *,
        shadow_rate: float = 0.0,
        rng: Callable[[], float] = random.random,
    ):
        if not 0.0 <= shadow_rate <= 1.0:
            raise ValueError("shadow_rate must be within [0, 1]")
        self._policy = policy
        self._provider = provider
        self._cache = cache if cache is not None else ResponseCache()
        self._telemetry = telemetry if telemetry is not None else CallTelemetry()
        self._chain = FailoverChain(provider, RepairCoordinator(provider))
        self._shadow_rate = shadow_rate
        self._rng = rng
        self._shadow_tasks: set[asyncio.Task] = set()

    @property
    def telemetry(self) -> CallTelemetry:
        return self._telemetry

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def route(
        self,
        task: str,
        prompt: str,
        *,
        require_json: bool = False,
        schema: SchemaName | str | None = None,
        user_mode: Mode | str | None = None,
        tokens_in_estimate: int | None = None,
        expect: Expect | str | None = None,
    ) -> CallResult:
        return await self.call(CallRequest(
            task=task,
            prompt=prompt,
            expect=Expect(expect) if expect else None,
            schema=SchemaName(schema) if schema else None,
            require_json=require_json,
            user_mode=user_mode,
            tokens_in_estimate=tokens_in_estimate,
        ))

    async def call(self, request: CallRequest) -> CallResult:
        start = time.monotonic()
        task = _plain(request.task)
        expect = request.expected_shape
        messages = self._build_messages(request, expect)

        # --- Cache ---
        key = make_key(task, request.schema, request.user_mode, self._cache_text(request, messages))
        cached = self._cache.get(key)
        if cached is not None:
            logger.info(f"Cache hit: {task} → {cached.model_used}")
            return cached

        # --- Policy (ConfigError propagates) ---
        tokens_in = request.tokens_in_estimate
        if tokens_in is None:
            tokens_in = estimate_tokens(messages)
        decision = self._policy.resolve_route(
            task, tokens_in=tokens_in,
            require_json=expect is not Expect.TEXT,
            explicit_mode=request.user_mode,
        )

        # --- Shadow ---
        if self._shadow_rate > 0 and self._rng() < self._shadow_rate:
            self._dispatch_shadow(
                task, decision.fallback_model, messages, expect,
                request.schema, decision.max_latency_ms,
            )

        # --- Primary → fallback ---
        def on_attempt(index: int, attempt: Attempt) -> None:
            self._log_attempt(task, attempt, used_fallback=index > 0)

        models = [decision.primary_model, decision.fallback_model]
        served, attempts = await self._chain.try_models(
            models, messages, expect, request.schema,
            timeout_ms=decision.max_latency_ms, on_attempt=on_attempt,
        )

        if served is not None:
            result = self._to_result(served, used_fallback=served is not attempts[0])
            self._cache.set(key, result)
            logger.info(
                f"Served {task} via {served.model}"
                f"{' (fallback)' if result.used_fallback else ''}"
                f"{' (repaired)' if served.repaired else ''} in {served.latency_ms}ms"
            )
            return result

        # A model answered but never validated: hand back its original text.
        answered = [
            (i, a) for i, a in enumerate(attempts)
            if not a.provider_failed and a.text and a.text.strip()
        ]
        if answered and expect is not Expect.TEXT:
            index, last = answered[-1]
            logger.warning(f"Returning unvalidated output from {last.model} for {task}: {last.error}")
            return self._to_result(last, used_fallback=index > 0)

        return self._degrade(task, attempts, start)

    # --- Helpers ---

    @staticmethod
    def _build_messages(request: CallRequest, expect: Expect) -> list[dict[str, Any]]:
        if request.messages:
            return [dict(msg) for msg in request.messages]
        messages: list[dict[str, Any]] = []
        if expect is Expect.JSON:
            schema = _plain(request.schema) if request.schema else "requested"
            messages.append({
                "role": "system",
                "content": f"ONLY return minified valid JSON for schema {schema}. No prose, no markdown.",
            })
        messages.append({"role": "user", "content": request.prompt})
        return messages

    @staticmethod
    def _cache_text(request: CallRequest, messages: list[dict[str, Any]]) -> str:
        if request.prompt is not None:
            return request.prompt
        return json.dumps(messages, sort_keys=True)

    @staticmethod
    def _to_result(attempt: Attempt, used_fallback: bool) -> CallResult:
        return CallResult(
            model_used=attempt.model,
            latency_ms=attempt.latency_ms,
            text=attempt.text,
            structured_value=attempt.value,
            repaired=attempt.repaired,
            used_fallback=used_fallback,
            valid_json=attempt.valid_json,
            tokens_in=attempt.tokens_in,
            tokens_out=attempt.tokens_out,
            cost_estimate=attempt.cost_estimate,
            error=attempt.error,
        )

    def _log_attempt(
        self, task: str, attempt: Attempt, used_fallback: bool = False, shadow: bool = False,
    ) -> None:
        self._telemetry.log_call(
            task, attempt.model, attempt.latency_ms,
            ok=attempt.ok,
            tokens_in=attempt.tokens_in,
            tokens_out=attempt.tokens_out,
            cost_estimate=attempt.cost_estimate,
            valid_json=attempt.valid_json,
            repaired=attempt.repaired,
            used_fallback=used_fallback,
            shadow=shadow,
            error=attempt.error,
        )

    def _degrade(self, task: str, attempts: list[Attempt], start: float) -> CallResult:
        last_error = next((a.error for a in reversed(attempts) if a.error), "unknown error")
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.error(f"All models failed for {task}: {last_error}")
        self._telemetry.log_call(
            task, DEGRADED_MODEL, latency_ms,
            ok=False, cost_estimate=0.0, used_fallback=True, error=last_error,
        )
        return CallResult(
            model_used=DEGRADED_MODEL,
            latency_ms=latency_ms,
            text=f"Placeholder response for {task} (all models failed: {last_error})",
            used_fallback=True,
            cost_estimate=0.0,
            error=last_error,
        )

    # --- Shadow calls ---

    def _dispatch_shadow(
        self,
        task: str,
        model: str,
        messages: list[dict[str, Any]],
        expect: Expect,
        schema: SchemaName | None,
        timeout_ms: int,
    ) -> None:
        """Fire a background comparison call; the caller never waits on it."""
        shadow = asyncio.create_task(
            self._shadow_call(task, model, [dict(m) for m in messages], expect, schema, timeout_ms),
            name=f"shadow:{task}:{model}",
        )
        self._shadow_tasks.add(shadow)
        shadow.add_done_callback(self._shadow_tasks.discard)
        logger.debug(f"Shadow call dispatched: {task} → {model}")

    async def _shadow_call(
        self,
        task: str,
        model: str,
        messages: list[dict[str, Any]],
        expect: Expect,
        schema: SchemaName | None,
        timeout_ms: int,
    ) -> None:
        try:
            # Shadow calls validate but never repair.
            attempt = await self._chain.attempt(
                model, messages, expect, schema, timeout_ms, allow_repair=False,
            )
            self._log_attempt(task, attempt, shadow=True)
        except Exception as e:
            logger.warning(f"Shadow call to {model} for {task} failed: {e}")

    async def drain_shadow_calls(self) -> None:
        """Wait for in-flight shadow calls (shutdown and tests)."""
        if self._shadow_tasks:
            await asyncio.gather(*list(self._shadow_tasks), return_exceptions=True)

    # --- Introspection ---

    def analytics(self) -> dict[str, Any]:
        return self._telemetry.get_analytics()

    async def health(self) -> dict[str, Any]:
        policy = self._policy.policy
        return {
            "ok": True,
            "api_connected": await self._provider.health_check(),
            "policy_version": policy.version,
            "modes": sorted(m.value for m in policy.modes),
            "tasks": sorted(policy.tasks),
        }

    async def aclose(self) -> None:
        await self.drain_shadow_calls()
        await self._provider.aclose()
