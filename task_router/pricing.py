"""Static price table and cost estimation.

Prices are USD per one million tokens, (input, output).
"""

from __future__ import annotations

# Keep sorted by provider prefix for readability.
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "anthropic/claude-3-5-sonnet-20240620": (3.00, 15.00),
    "cohere/command-r-08-2024": (0.50, 1.50),
    "cohere/command-r-plus-08-2024": (1.00, 3.00),
    "google/gemini-2.5-flash": (0.075, 0.30),
    "google/gemini-2.5-pro": (1.25, 5.00),
    "martian/code": (0.20, 0.80),
    "mistralai/devstral-small": (0.20, 0.60),
    "openai/gpt-4.1": (2.50, 10.00),
    "openai/gpt-4.1-nano:cheap": (0.15, 0.60),
    "openai/gpt-4o-mini": (0.15, 0.60),
    "router/offline": (0.0, 0.0),
}

# Unknown models are priced like a frontier model so estimates err high.
DEFAULT_PRICE: tuple[float, float] = (2.50, 10.00)

BASELINE_MODEL = "openai/gpt-4.1"


def price_for(model: str) -> tuple[float, float]:
    return MODEL_PRICES.get(model, DEFAULT_PRICE)


def estimate_cost(model: str, tokens_in: int | None, tokens_out: int | None) -> float:
    """Estimated USD cost of one call."""
    rate_in, rate_out = price_for(model)
    return ((tokens_in or 0) * rate_in + (tokens_out or 0) * rate_out) / 1_000_000


def baseline_cost(tokens_in: int | None, tokens_out: int | None) -> float:
    """Cost of the same token counts on the baseline model, for savings reports."""
    return estimate_cost(BASELINE_MODEL, tokens_in, tokens_out)
