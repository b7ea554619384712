"""Environment-level settings, read once at process start."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from task_router.cache import DEFAULT_TTL_MS
from task_router.errors import ConfigError
from task_router.models import Mode
from task_router.provider import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_MS
from task_router.telemetry import DEFAULT_CAPACITY


@dataclass(frozen=True)
class Settings:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    routing_mode: Mode | None = None
    max_latency_ms: int | None = None
    shadow_rate: float = 0.0
    policy_path: Path | None = None
    cache_ttl_ms: int = DEFAULT_TTL_MS
    log_capacity: int = DEFAULT_CAPACITY

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()

        api_key = os.getenv("ROUTER_API_KEY", "").strip()
        if not api_key:
            raise ConfigError("Missing env var ROUTER_API_KEY for the upstream API key")

        mode = os.getenv("ROUTING_MODE", "").strip() or None
        try:
            routing_mode = Mode(mode) if mode else None
        except ValueError as e:
            raise ConfigError(f"ROUTING_MODE must be one of {[m.value for m in Mode]}, got {mode!r}") from e

        shadow_rate = _float("ROUTING_SHADOW_RATE", 0.0)
        if not 0.0 <= shadow_rate <= 1.0:
            raise ConfigError(f"ROUTING_SHADOW_RATE must be within [0, 1], got {shadow_rate}")

        policy_path = os.getenv("ROUTING_POLICY_PATH", "").strip()
        return cls(
            api_key=api_key,
            base_url=os.getenv("ROUTER_BASE_URL", "").strip() or DEFAULT_BASE_URL,
            timeout_ms=_int("ROUTER_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            routing_mode=routing_mode,
            max_latency_ms=_int("ROUTING_MAX_LATENCY_MS", None),
            shadow_rate=shadow_rate,
            policy_path=Path(policy_path) if policy_path else None,
            cache_ttl_ms=_int("ROUTER_CACHE_TTL_MS", DEFAULT_TTL_MS),
            log_capacity=_int("ROUTER_LOG_CAPACITY", DEFAULT_CAPACITY),
        )


def _int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
