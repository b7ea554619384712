"""Exception hierarchy for task-router.

ConfigError is fatal and propagates to the caller. ProviderError and its
subclasses are recovered inside the Router by advancing to the fallback
model; they only ever surface in telemetry.
"""


class RouterError(RuntimeError):
    pass


class ConfigError(RouterError):
    """Bad or missing routing policy, credential, or environment value."""


class ProviderError(RouterError):
    """An upstream chat-completion call failed."""

    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model


class ProviderHTTPError(ProviderError):
    """The upstream endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status: int, model: str | None = None):
        super().__init__(message, model=model)
        self.status = status


class ProviderTimeoutError(ProviderError):
    """The hard per-call timeout elapsed and the request was cancelled."""

    def __init__(self, timeout_ms: int, model: str | None = None):
        super().__init__(f"Request timeout after {timeout_ms}ms", model=model)
        self.timeout_ms = timeout_ms


class OutputValidationError(RouterError):
    """Raised by ValidationOutcome.unwrap() when the model output is invalid."""
