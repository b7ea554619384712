"""Primary/fallback chain with per-model validation and repair."""

import time
from typing import Any, Callable

from loguru import logger

from task_router.models import Attempt, Expect, ProviderClient, SchemaName
from task_router.pricing import estimate_cost
from task_router.repair import RepairCoordinator, needs_repair
from task_router.validators import check_output

AttemptHook = Callable[[int, Attempt], None]


def _add(a: int | None, b: int | None) -> int | None:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


class FailoverChain:
    """Try each model in order until one yields valid output."""

    def __init__(self, provider: ProviderClient, repair: RepairCoordinator | None = None):
        self._provider = provider
        self._repair = repair or RepairCoordinator(provider)

    async def attempt(
        self,
        model: str,
        messages: list[dict[str, Any]],
        expect: Expect,
        schema: SchemaName | str | None = None,
        timeout_ms: int | None = None,
        allow_repair: bool = True,
    ) -> Attempt:
        """Call one model, validate, and repair once if allowed. Never raises."""
        start = time.monotonic()
        try:
            completion = await self._provider.complete(model, messages, timeout_ms=timeout_ms)
        except Exception as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"Provider call to {model} failed in {latency_ms}ms: {e}")
            return Attempt(
                model=model, ok=False, latency_ms=latency_ms,
                provider_failed=True, error=str(e), calls=1,
            )

        if not isinstance(completion.text, str):
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"Provider {model} returned non-text content: {type(completion.text).__name__}")
            return Attempt(
                model=model, ok=False, latency_ms=latency_ms, provider_failed=True,
                error=f"Non-text response from {model}", calls=1,
            )

        structured = Expect(expect) is not Expect.TEXT
        attempt = Attempt(
            model=model,
            ok=False,
            text=completion.text,
            tokens_in=completion.tokens_in,
            tokens_out=completion.tokens_out,
            calls=1,
        )
        validation = check_output(completion.text, expect, schema)

        if validation.ok:
            attempt.ok = True
            attempt.value = validation.data if structured else None
        else:
            logger.warning(f"Output from {model} failed validation: {validation.error}")
            attempt.error = validation.error
            if allow_repair and needs_repair(expect, schema):
                outcome = await self._repair.repair(
                    model, messages, completion.text, expect, schema,
                    validation.error, timeout_ms=timeout_ms,
                )
                attempt.calls += 1
                if outcome.completion is not None:
                    attempt.tokens_in = _add(attempt.tokens_in, outcome.completion.tokens_in)
                    attempt.tokens_out = _add(attempt.tokens_out, outcome.completion.tokens_out)
                if outcome.ok:
                    attempt.ok = True
                    attempt.repaired = True
                    attempt.text = outcome.completion.text
                    attempt.value = outcome.validation.data
                    attempt.error = None
                else:
                    # Keep the pre-repair text for the caller.
                    attempt.error = outcome.error or attempt.error

        if structured:
            attempt.valid_json = attempt.ok
        attempt.latency_ms = int((time.monotonic() - start) * 1000)
        if attempt.tokens_in is not None or attempt.tokens_out is not None:
            attempt.cost_estimate = estimate_cost(model, attempt.tokens_in, attempt.tokens_out)
        return attempt

    async def try_models(
        self,
        models: list[str],
        messages: list[dict[str, Any]],
        expect: Expect,
        schema: SchemaName | str | None = None,
        timeout_ms: int | None = None,
        on_attempt: AttemptHook | None = None,
    ) -> tuple[Attempt | None, list[Attempt]]:
        """Attempt each model in sequence.

        Returns:
            Tuple of (first valid attempt or None, every attempt made).
        """
        attempts: list[Attempt] = []
        for index, model in enumerate(models):
            attempt = await self.attempt(model, messages, expect, schema, timeout_ms)
            attempts.append(attempt)
            if on_attempt is not None:
                on_attempt(index, attempt)
            if attempt.ok:
                return attempt, attempts
            logger.info(f"Model {model} did not produce valid output: {attempt.error}")
        return None, attempts
