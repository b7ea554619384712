from __future__ import annotations

from loguru import logger

from task_router.cache import ResponseCache
from task_router.config import Settings
from task_router.models import ProviderClient
from task_router.policy import PolicyEngine, RoutingPolicy
from task_router.provider import ChatCompletionClient
from task_router.router import Router
from task_router.telemetry import CallTelemetry


def build_router(
    settings: Settings | None = None,
    provider: ProviderClient | None = None,
) -> Router:
    """Wire the service objects once at process start.

    Configuration problems (missing key, bad policy file) raise ConfigError
    here rather than on the first request.
    """

    settings = settings or Settings.from_env()
    policy = RoutingPolicy.load(settings.policy_path)
    engine = PolicyEngine(
        policy,
        env_mode=settings.routing_mode,
        env_max_latency_ms=settings.max_latency_ms,
    )
    if provider is None:
        provider = ChatCompletionClient(
            settings.api_key,
            base_url=settings.base_url,
            default_timeout_ms=settings.timeout_ms,
        )
    logger.info(
        f"Router ready: provider={provider.name} base={settings.base_url} "
        f"shadow_rate={settings.shadow_rate}"
    )
    return Router(
        engine,
        provider,
        ResponseCache(default_ttl_ms=settings.cache_ttl_ms),
        CallTelemetry(capacity=settings.log_capacity),
        shadow_rate=settings.shadow_rate,
    )
