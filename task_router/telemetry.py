"""Fixed-capacity call log with aggregate analytics."""

import itertools
import threading
import time
from collections import deque
from typing import Any, Callable

from loguru import logger

from task_router.models import LogEntry

DEFAULT_CAPACITY = 200


class CallTelemetry:
    """Circular buffer of LogEntry records; the oldest entry is evicted first."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._clock = clock
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def log_call(
        self,
        task: str,
        model: str,
        latency_ms: int,
        **fields: Any,
    ) -> LogEntry:
        """Append one record. Extra keyword fields map onto LogEntry."""
        now_ms = int(self._clock() * 1000)
        with self._lock:
            entry = LogEntry(
                id=f"call_{next(self._ids)}_{now_ms}",
                task=str(getattr(task, "value", task)),
                model=model,
                latency_ms=latency_ms,
                timestamp_ms=now_ms,
                **fields,
            )
            self._entries.append(entry)
        logger.debug(
            f"Telemetry: {entry.task} via {model} ok={entry.ok} "
            f"{latency_ms}ms repaired={entry.repaired} shadow={entry.shadow}"
        )
        return entry

    def get_logs(
        self,
        limit: int | None = None,
        task: str | None = None,
        model: str | None = None,
        since_ms: int | None = None,
    ) -> list[LogEntry]:
        """Filtered copy of the buffer, newest first."""
        with self._lock:
            entries = list(self._entries)
        if task is not None:
            task = str(getattr(task, "value", task))
            entries = [e for e in entries if e.task == task]
        if model is not None:
            entries = [e for e in entries if e.model == model]
        if since_ms is not None:
            entries = [e for e in entries if e.timestamp_ms >= since_ms]
        entries.reverse()
        if limit is not None:
            entries = entries[:limit]
        return entries

    def get_analytics(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries)

        total = len(entries)
        if total == 0:
            return {
                "total_calls": 0,
                "avg_latency_ms": 0.0,
                "total_cost": 0.0,
                "task_stats": {},
                "model_stats": {},
                "total_repairs": 0,
                "repair_rate": 0.0,
                "total_validations": 0,
                "first_pass_valid_rate": 0.0,
                "failure_rate": 0.0,
                "fallback_rate": 0.0,
                "shadow_calls": 0,
            }

        repairs = sum(1 for e in entries if e.repaired)
        validations = [e for e in entries if e.valid_json is not None]
        first_pass = sum(1 for e in validations if e.valid_json and not e.repaired)

        return {
            "total_calls": total,
            "avg_latency_ms": sum(e.latency_ms for e in entries) / total,
            "total_cost": sum(e.cost_estimate or 0.0 for e in entries),
            "task_stats": _group(entries, lambda e: e.task),
            "model_stats": _group(entries, lambda e: e.model),
            "total_repairs": repairs,
            "repair_rate": repairs / total,
            "total_validations": len(validations),
            "first_pass_valid_rate": first_pass / len(validations) if validations else 0.0,
            "failure_rate": sum(1 for e in entries if not e.ok) / total,
            "fallback_rate": sum(1 for e in entries if e.used_fallback) / total,
            "shadow_calls": sum(1 for e in entries if e.shadow),
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._ids = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _group(entries: list[LogEntry], key: Callable[[LogEntry], str]) -> dict[str, dict[str, float]]:
    groups: dict[str, list[LogEntry]] = {}
    for entry in entries:
        groups.setdefault(key(entry), []).append(entry)
    return {
        name: {
            "count": len(items),
            "avg_latency_ms": sum(e.latency_ms for e in items) / len(items),
            "total_cost": sum(e.cost_estimate or 0.0 for e in items),
        }
        for name, items in groups.items()
    }
