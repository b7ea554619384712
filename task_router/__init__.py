"""task-router: task-aware LLM routing with validation, repair, and fallback."""

from task_router.cache import ResponseCache, make_key
from task_router.classifier import classify_task
from task_router.config import Settings
from task_router.errors import (
    ConfigError,
    ProviderError,
    ProviderHTTPError,
    ProviderTimeoutError,
    RouterError,
)
from task_router.factory import build_router
from task_router.models import (
    DEGRADED_MODEL,
    CallRequest,
    CallResult,
    Expect,
    Mode,
    ProviderClient,
    SchemaName,
    TaskId,
    ValidationOutcome,
)
from task_router.policy import PolicyEngine, RoutingPolicy
from task_router.pricing import estimate_cost
from task_router.provider import ChatCompletionClient
from task_router.router import Router
from task_router.telemetry import CallTelemetry

__all__ = [
    "DEGRADED_MODEL",
    "CallRequest",
    "CallResult",
    "CallTelemetry",
    "ChatCompletionClient",
    "ConfigError",
    "Expect",
    "Mode",
    "PolicyEngine",
    "ProviderClient",
    "ProviderError",
    "ProviderHTTPError",
    "ProviderTimeoutError",
    "ResponseCache",
    "Router",
    "RouterError",
    "RoutingPolicy",
    "SchemaName",
    "Settings",
    "TaskId",
    "ValidationOutcome",
    "build_router",
    "classify_task",
    "estimate_cost",
    "make_key",
]
