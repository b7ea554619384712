"""Core data models for task-router."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from task_router.errors import OutputValidationError

# Model id reported when every upstream model failed.
DEGRADED_MODEL = "router/offline"


class TaskId(str, Enum):
    TOPIC_MAP = "topic_map"
    CHUNK_CLASSIFY = "chunk_classify"
    QUIZ_GENERATE = "quiz_generate"
    OVERVIEW_SUMMARIZE = "overview_summarize"
    DIAGRAM_MERMAID = "diagram_mermaid"
    OTHER = "other"


class Mode(str, Enum):
    QUALITY = "quality"
    BALANCED = "balanced"
    CHEAP = "cheap"


class Expect(str, Enum):
    """Shape the caller expects the model output to have."""
    TEXT = "text"
    JSON = "json"
    MERMAID = "mermaid"


class SchemaName(str, Enum):
    MODULES = "modules"
    ASSIGNMENTS = "assignments"
    QUIZ = "quiz"
    OVERVIEW = "overview"
    DIAGRAM = "diagram"


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a structural check. Always returned, never raised."""
    ok: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def success(cls, data: Any) -> "ValidationOutcome":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str) -> "ValidationOutcome":
        return cls(ok=False, error=error)

    def unwrap(self) -> Any:
        if not self.ok:
            raise OutputValidationError(self.error or "invalid output")
        return self.data


@dataclass(frozen=True)
class Completion:
    """One reply from the upstream chat-completion endpoint."""
    text: str
    status: int
    latency_ms: int
    raw: Any = None
    tokens_in: int | None = None
    tokens_out: int | None = None


@dataclass(frozen=True)
class CallRequest:
    task: str
    prompt: str | None = None
    messages: tuple[dict[str, str], ...] | None = None
    expect: Expect | None = None
    schema: SchemaName | None = None
    require_json: bool = False
    user_mode: Mode | None = None
    tokens_in_estimate: int | None = None

    def __post_init__(self) -> None:
        if self.prompt is None and not self.messages:
            raise ValueError("CallRequest needs a prompt or messages")

    @property
    def expected_shape(self) -> Expect:
        if self.expect is not None:
            return Expect(self.expect)
        if self.schema is not None and SchemaName(self.schema) is SchemaName.DIAGRAM:
            return Expect.MERMAID
        if self.require_json:
            return Expect.JSON
        return Expect.TEXT


@dataclass(frozen=True)
class CallResult:
    """What the Router hands back to the caller."""
    model_used: str
    latency_ms: int
    text: str | None = None
    structured_value: Any = None
    repaired: bool = False
    used_fallback: bool = False
    valid_json: bool | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    cost_estimate: float | None = None
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.model_used == DEGRADED_MODEL


@dataclass(frozen=True)
class LogEntry:
    """Telemetry record for one model attempt."""
    id: str
    task: str
    model: str
    latency_ms: int
    timestamp_ms: int
    ok: bool = True
    tokens_in: int | None = None
    tokens_out: int | None = None
    cost_estimate: float | None = None
    valid_json: bool | None = None
    repaired: bool = False
    used_fallback: bool = False
    shadow: bool = False
    error: str | None = None


@dataclass(frozen=True)
class RouteDecision:
    """Result of policy resolution."""
    mode: Mode
    primary_model: str
    fallback_model: str
    max_latency_ms: int
    reason: str = ""  # which precedence level picked the mode


class ProviderClient(ABC):
    """Abstract base class for upstream chat-completion clients."""

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout_ms: int | None = None,
    ) -> Completion:
        """Issue one chat-completion request."""
        ...

    async def health_check(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    @property
    def name(self) -> str:
        return self.__class__.__name__


@dataclass
class Attempt:
    """Outcome of one model's call/validate/repair sub-flow."""
    model: str
    ok: bool
    text: str | None = None
    value: Any = None
    latency_ms: int = 0
    tokens_in: int | None = None
    tokens_out: int | None = None
    cost_estimate: float | None = None
    valid_json: bool | None = None
    repaired: bool = False
    provider_failed: bool = False
    error: str | None = None
    calls: int = 0
