"""Routing policy: which models serve which task, and how fast they must answer.

Mode precedence, first defined wins:
  1. Explicit caller-supplied mode
  2. Per-task mode from the policy file
  3. Process-wide environment override (ROUTING_MODE)
  4. Policy default mode

The resolved mode picks a (primary, fallback) pair from the policy's mode
table. Quality-tier requests with a very long input swap the primary for a
long-context model.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match
from loguru import logger

from task_router.errors import ConfigError
from task_router.models import Mode, RouteDecision

DEFAULT_POLICY_PATH = Path(__file__).with_name("policy.json")
DEFAULT_MAX_LATENCY_MS = 4500
LONG_CONTEXT_MODEL = "google/gemini-2.5-flash"
LONG_CONTEXT_THRESHOLD = 5000

_MODES = [m.value for m in Mode]

POLICY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["defaults", "modes"],
    "properties": {
        "version": {"type": "string"},
        "defaults": {
            "type": "object",
            "required": ["mode"],
            "properties": {
                "mode": {"enum": _MODES},
                "max_latency_ms": {"type": "number", "exclusiveMinimum": 0},
            },
        },
        "modes": {
            "type": "object",
            "minProperties": 1,
            "propertyNames": {"enum": _MODES},
            "additionalProperties": {
                "type": "object",
                "required": ["primary", "fallback"],
                "properties": {
                    "primary": {"type": "string", "minLength": 1},
                    "fallback": {"type": "string", "minLength": 1},
                    "max_latency_ms": {"type": "number", "exclusiveMinimum": 0},
                },
            },
        },
        "tasks": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["mode"],
                "properties": {"mode": {"enum": _MODES}},
            },
        },
        "long_context": {
            "type": "object",
            "properties": {
                "model": {"type": "string", "minLength": 1},
                "threshold_tokens": {"type": "integer", "minimum": 0},
            },
        },
    },
}

_POLICY_VALIDATOR = Draft202012Validator(POLICY_SCHEMA)


@dataclass(frozen=True)
class ModeRoute:
    primary: str
    fallback: str
    max_latency_ms: int | None = None


@dataclass(frozen=True)
class RoutingPolicy:
    """Declarative routing table. Loaded once, read-only afterwards."""

    version: str
    default_mode: Mode
    default_max_latency_ms: int
    modes: dict[Mode, ModeRoute]
    tasks: dict[str, Mode]
    long_context_model: str = LONG_CONTEXT_MODEL
    long_context_threshold: int = LONG_CONTEXT_THRESHOLD

    @classmethod
    def from_dict(cls, data: Any) -> "RoutingPolicy":
        error = best_match(_POLICY_VALIDATOR.iter_errors(data))
        if error is not None:
            where = "/".join(str(p) for p in error.absolute_path) or "<root>"
            raise ConfigError(f"Malformed routing policy at {where}: {error.message}")

        modes = {
            Mode(name): ModeRoute(
                primary=row["primary"],
                fallback=row["fallback"],
                max_latency_ms=int(row["max_latency_ms"]) if "max_latency_ms" in row else None,
            )
            for name, row in data["modes"].items()
        }
        tasks = {task: Mode(row["mode"]) for task, row in data.get("tasks", {}).items()}
        default_mode = Mode(data["defaults"]["mode"])

        # Every mode the policy can resolve to must have a model pair.
        referenced = {default_mode, *tasks.values()}
        missing = sorted(m.value for m in referenced if m not in modes)
        if missing:
            raise ConfigError(f"Routing policy references undefined modes: {', '.join(missing)}")

        long_context = data.get("long_context", {})
        return cls(
            version=data.get("version", "unversioned"),
            default_mode=default_mode,
            default_max_latency_ms=int(data["defaults"].get("max_latency_ms", DEFAULT_MAX_LATENCY_MS)),
            modes=modes,
            tasks=tasks,
            long_context_model=long_context.get("model", LONG_CONTEXT_MODEL),
            long_context_threshold=long_context.get("threshold_tokens", LONG_CONTEXT_THRESHOLD),
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> "RoutingPolicy":
        path = Path(path) if path else DEFAULT_POLICY_PATH
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigError(f"Routing policy not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load routing policy {path}: {e}") from e
        policy = cls.from_dict(data)
        logger.info(
            f"Routing policy {policy.version} loaded from {path}: "
            f"{len(policy.modes)} modes, {len(policy.tasks)} tasks"
        )
        return policy


class PolicyEngine:
    """Resolves a task to a primary/fallback model pair and a latency budget."""

    def __init__(
        self,
        policy: RoutingPolicy,
        env_mode: Mode | str | None = None,
        env_max_latency_ms: int | None = None,
    ):
        self.policy = policy
        try:
            self._env_mode = Mode(env_mode) if env_mode else None
        except ValueError as e:
            raise ConfigError(f"Unknown routing mode override: {env_mode}") from e
        self._env_max_latency_ms = env_max_latency_ms

    def resolve_mode(self, task: str, explicit_mode: Mode | str | None = None) -> tuple[Mode, str]:
        """Return (mode, reason) following the precedence order."""
        task = str(getattr(task, "value", task))
        if explicit_mode:
            try:
                return Mode(explicit_mode), "explicit"
            except ValueError as e:
                raise ConfigError(f"Unknown routing mode: {explicit_mode}") from e
        if task in self.policy.tasks:
            return self.policy.tasks[task], "task"
        if self._env_mode is not None:
            return self._env_mode, "env"
        return self.policy.default_mode, "default"

    def resolve_route(
        self,
        task: str,
        tokens_in: int | None = None,
        require_json: bool = False,
        explicit_mode: Mode | str | None = None,
    ) -> RouteDecision:
        mode, reason = self.resolve_mode(task, explicit_mode)
        route = self.policy.modes.get(mode)
        if route is None:
            raise ConfigError(f"No models configured for mode '{mode.value}' (task {task})")

        primary = route.primary
        if (
            mode is Mode.QUALITY
            and tokens_in
            and tokens_in > self.policy.long_context_threshold
        ):
            primary = self.policy.long_context_model
            reason += "+long_context"

        if self._env_max_latency_ms is not None:
            max_latency_ms = self._env_max_latency_ms
        elif route.max_latency_ms is not None:
            max_latency_ms = route.max_latency_ms
        else:
            max_latency_ms = self.policy.default_max_latency_ms

        decision = RouteDecision(
            mode=mode,
            primary_model=primary,
            fallback_model=route.fallback,
            max_latency_ms=max_latency_ms,
            reason=reason,
        )
        logger.info(
            f"Route: {getattr(task, 'value', task)} → {mode.value} ({reason}) "
            f"primary={primary} fallback={route.fallback} "
            f"timeout={max_latency_ms}ms json={require_json} tokens≈{tokens_in or 0}"
        )
        return decision
