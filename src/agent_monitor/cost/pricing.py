"""Token prices (USD per million tokens) and the lookup rules that map model ids onto them."""

from __future__ import annotations

from dataclasses import dataclass

from agent_monitor.protocol import Agent

_PER_MILLION = 1_000_000


@dataclass(frozen=True)
class ModelPrice:
    model: str
    display_name: str
    provider: str
    input_per_million: float
    output_per_million: float
    cache_read_per_million: float | None = None
    cache_write_per_million: float | None = None


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    model: str = "unknown"
    timestamp: float | None = None
    # Reported by Gemini only; not priced separately.
    thought_tokens: int = 0
    tool_tokens: int = 0


CLAUDE_PRICES = (
    ModelPrice("claude-opus-4-5-20251101", "Claude Opus 4.5", "anthropic", 5, 25, 0.5, 6.25),
    ModelPrice("claude-opus-4-20250514", "Claude Opus 4", "anthropic", 15, 75, 1.5, 18.75),
    ModelPrice("claude-sonnet-4-5-20250514", "Claude Sonnet 4.5", "anthropic", 3, 15, 0.3, 3.75),
    ModelPrice("claude-sonnet-4-20250514", "Claude Sonnet 4", "anthropic", 3, 15, 0.3, 3.75),
    ModelPrice("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "anthropic", 3, 15, 0.3, 3.75),
    ModelPrice("claude-haiku-4-5-20250514", "Claude Haiku 4.5", "anthropic", 1, 5, 0.1, 1.25),
    ModelPrice("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "anthropic", 0.8, 4, 0.08, 1),
)

# Standard context window rates; long-context requests bill higher.
GEMINI_PRICES = (
    ModelPrice("gemini-2.5-pro", "Gemini 2.5 Pro", "google", 1.25, 10, 0.3125),
    ModelPrice("gemini-2.5-flash", "Gemini 2.5 Flash", "google", 0.3, 2.5, 0.075),
    ModelPrice("gemini-2.0-flash", "Gemini 2.0 Flash", "google", 0.1, 0.4, 0.025),
    ModelPrice("gemini-2.0-flash-exp", "Gemini 2.0 Flash (Exp)", "google", 0.1, 0.4, 0.025),
    ModelPrice("gemini-1.5-pro", "Gemini 1.5 Pro", "google", 1.25, 5, 0.3125),
    ModelPrice("gemini-1.5-flash", "Gemini 1.5 Flash", "google", 0.15, 0.6, 0.0375),
)

CURSOR_PRICES = (
    ModelPrice("cursor-small", "Cursor Small", "cursor", 0.1, 0.3),
)

ALL_PRICES = CLAUDE_PRICES + GEMINI_PRICES + CURSOR_PRICES

# (substrings, canonical id); first rule with any matching substring wins.
FAMILY_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("opus-4-5", "opus-4.5"), "claude-opus-4-5-20251101"),
    (("opus",), "claude-opus-4-20250514"),
    (("sonnet-4-5", "sonnet-4.5"), "claude-sonnet-4-5-20250514"),
    (("sonnet",), "claude-sonnet-4-20250514"),
    (("haiku-4-5", "haiku-4.5"), "claude-haiku-4-5-20250514"),
    (("haiku",), "claude-3-5-haiku-20241022"),
    (("gemini-2.5-flash",), "gemini-2.5-flash"),
    (("gemini-2.5",), "gemini-2.5-pro"),
    (("gemini-2.0", "gemini-2-flash"), "gemini-2.0-flash"),
    (("gemini-1.5-flash",), "gemini-1.5-flash"),
    (("gemini-1.5",), "gemini-1.5-pro"),
)

AGENT_DEFAULT_MODELS = {
    Agent.CLAUDE: "claude-sonnet-4-20250514",
    Agent.GEMINI: "gemini-2.0-flash",
    Agent.CURSOR: "cursor-small",
}


class PricingEngine:
    def __init__(self, prices: tuple[ModelPrice, ...] = ALL_PRICES):
        self._prices = prices
        self._by_model = {price.model: price for price in prices}

    @property
    def models(self) -> list[str]:
        return [price.model for price in self._prices]

    def price_for(self, model_id: str | None) -> ModelPrice | None:
        if not model_id or not model_id.strip():
            return None

        exact = self._by_model.get(model_id)
        if exact is not None:
            return exact

        for price in self._prices:
            if price.model in model_id or model_id in price.model:
                return price

        lowered = model_id.lower()
        for needles, canonical in FAMILY_RULES:
            if any(needle in lowered for needle in needles):
                return self._by_model.get(canonical)
        return None

    @staticmethod
    def cost(usage: TokenUsage, price: ModelPrice) -> float:
        total = usage.input_tokens / _PER_MILLION * price.input_per_million
        total += usage.output_tokens / _PER_MILLION * price.output_per_million
        if price.cache_read_per_million:
            total += usage.cache_read_tokens / _PER_MILLION * price.cache_read_per_million
        if price.cache_write_per_million:
            total += usage.cache_creation_tokens / _PER_MILLION * price.cache_write_per_million
        return total

    def cost_for_model(self, usage: TokenUsage, model_id: str | None = None) -> float | None:
        price = self.price_for(model_id if model_id is not None else usage.model)
        return None if price is None else self.cost(usage, price)

    def cost_by_agent(self, usage: TokenUsage, agent: str) -> float | None:
        """Price by the usage's own model, else by the agent's usual model."""
        price = self.price_for(usage.model)
        if price is None:
            default_model = AGENT_DEFAULT_MODELS.get(agent)
            price = self._by_model.get(default_model) if default_model else None
        return None if price is None else self.cost(usage, price)
