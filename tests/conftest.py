import json
from typing import Any

import pytest

from task_router.cache import ResponseCache
from task_router.errors import ProviderError
from task_router.models import Completion, ProviderClient
from task_router.policy import PolicyEngine, RoutingPolicy
from task_router.router import Router
from task_router.telemetry import CallTelemetry

POLICY = {
    "version": "test",
    "defaults": {"mode": "balanced", "max_latency_ms": 1000},
    "modes": {
        "quality": {"primary": "q-primary", "fallback": "q-fallback", "max_latency_ms": 3000},
        "balanced": {"primary": "b-primary", "fallback": "b-fallback"},
        "cheap": {"primary": "c-primary", "fallback": "c-fallback"},
    },
    "tasks": {
        "topic_map": {"mode": "quality"},
        "quiz_generate": {"mode": "balanced"},
        "chunk_classify": {"mode": "cheap"},
    },
}

VALID_MODULES = json.dumps({"modules": [{"id": "m1", "title": "Intro", "summary": "Basics"}]})


class ScriptedProvider(ProviderClient):
    """Replies from a per-model script; the last entry repeats once exhausted.

    Entries are reply text or an exception instance to raise.
    """

    def __init__(self, script: dict[str, list[Any]]):
        self.script = {model: list(replies) for model, replies in script.items()}
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.closed = False

    async def complete(self, model, messages, max_tokens=None, temperature=None, timeout_ms=None):
        self.calls.append((model, [dict(m) for m in messages]))
        replies = self.script.get(model)
        if not replies:
            raise ProviderError(f"no script for {model}", model=model)
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, status=200, latency_ms=1, tokens_in=100, tokens_out=50)

    async def aclose(self):
        self.closed = True

    def models_called(self) -> list[str]:
        return [model for model, _ in self.calls]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def policy() -> RoutingPolicy:
    return RoutingPolicy.from_dict(POLICY)


@pytest.fixture
def engine(policy) -> PolicyEngine:
    return PolicyEngine(policy)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_router(engine, clock):
    def _make(script: dict[str, list[Any]], **kwargs) -> tuple[Router, ScriptedProvider]:
        provider = ScriptedProvider(script)
        router = Router(
            engine,
            provider,
            ResponseCache(clock=clock),
            CallTelemetry(clock=clock),
            **kwargs,
        )
        return router, provider

    return _make
