"""Per-model token pricing (USD per million tokens) and cost calculation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from blueberry.ai.tokens import lookup_by_family

PER_MILLION = Decimal(1_000_000)


class PricingTier(StrEnum):
    BATCH = "batch"
    FLEX = "flex"
    STANDARD = "standard"
    PRIORITY = "priority"


@dataclass(frozen=True, slots=True)
class ModelPrice:
    input: Decimal
    output: Decimal
    cached_input: Optional[Decimal] = None


def _p(input_price: str, output_price: str, cached: str | None = None) -> ModelPrice:
    return ModelPrice(Decimal(input_price), Decimal(output_price), Decimal(cached) if cached else None)


DEFAULT_PRICE = _p("1.00", "3.00")

TEXT_PRICES: dict[PricingTier, dict[str, ModelPrice]] = {
    PricingTier.BATCH: {
        "gpt-5": _p("0.625", "5.00", "0.0625"),
        "gpt-5-mini": _p("0.125", "1.00", "0.0125"),
        "gpt-5-nano": _p("0.025", "0.20", "0.0025"),
        "gpt-4.1": _p("1.00", "4.00"),
        "gpt-4.1-mini": _p("0.20", "0.80"),
        "gpt-4.1-nano": _p("0.05", "0.20"),
        "gpt-4o": _p("1.25", "5.00"),
        "gpt-4o-2024-05-13": _p("2.50", "7.50"),
        "gpt-4o-mini": _p("0.075", "0.30"),
        "o1": _p("7.50", "30.00"),
        "o1-pro": _p("75.00", "300.00"),
        "o3-pro": _p("10.00", "40.00"),
        "o3": _p("1.00", "4.00"),
        "o3-deep-research": _p("5.00", "20.00"),
        "o4-mini": _p("0.55", "2.20"),
        "o4-mini-deep-research": _p("1.00", "4.00"),
        "o3-mini": _p("0.55", "2.20"),
        "o1-mini": _p("0.55", "2.20"),
        "computer-use-preview": _p("1.50", "6.00"),
    },
    PricingTier.FLEX: {
        "gpt-5": _p("0.625", "5.00", "0.0625"),
        "gpt-5-mini": _p("0.125", "1.00", "0.0125"),
        "gpt-5-nano": _p("0.025", "0.20", "0.0025"),
        "o3": _p("1.00", "4.00", "0.25"),
        "o4-mini": _p("0.55", "2.20", "0.138"),
    },
    PricingTier.STANDARD: {
        "gpt-5": _p("1.25", "10.00", "0.125"),
        "gpt-5-mini": _p("0.25", "2.00", "0.025"),
        "gpt-5-nano": _p("0.05", "0.40", "0.005"),
        "gpt-5-chat-latest": _p("1.25", "10.00", "0.125"),
        "gpt-4.1": _p("2.00", "8.00", "0.50"),
        "gpt-4.1-mini": _p("0.40", "1.60", "0.10"),
        "gpt-4.1-nano": _p("0.10", "0.40", "0.025"),
        "gpt-4o": _p("2.50", "10.00", "1.25"),
        "gpt-4o-2024-05-13": _p("5.00", "15.00"),
        "gpt-4o-mini": _p("0.15", "0.60", "0.075"),
        "gpt-realtime": _p("4.00", "16.00", "0.40"),
        "gpt-4o-realtime-preview": _p("5.00", "20.00", "2.50"),
        "gpt-4o-mini-realtime-preview": _p("0.60", "2.40", "0.30"),
        "gpt-audio": _p("2.50", "10.00"),
        "gpt-4o-audio-preview": _p("2.50", "10.00"),
        "gpt-4o-mini-audio-preview": _p("0.15", "0.60"),
        "o1": _p("15.00", "60.00", "7.50"),
        "o1-pro": _p("150.00", "600.00"),
        "o3-pro": _p("20.00", "80.00"),
        "o3": _p("2.00", "8.00", "0.50"),
        "o3-deep-research": _p("10.00", "40.00", "2.50"),
        "o4-mini": _p("1.10", "4.40", "0.275"),
        "o4-mini-deep-research": _p("2.00", "8.00", "0.50"),
        "o3-mini": _p("1.10", "4.40", "0.55"),
        "o1-mini": _p("1.10", "4.40", "0.55"),
        "codex-mini-latest": _p("1.50", "6.00", "0.375"),
        "gpt-4o-mini-search-preview": _p("0.15", "0.60"),
        "gpt-4o-search-preview": _p("2.50", "10.00"),
        "computer-use-preview": _p("3.00", "12.00"),
        # legacy
        "chatgpt-4o-latest": _p("5.00", "15.00"),
        "gpt-4-turbo": _p("10.00", "30.00"),
        "gpt-4-1106-preview": _p("10.00", "30.00"),
        "gpt-4-32k": _p("60.00", "120.00"),
        "gpt-4": _p("30.00", "60.00"),
        "gpt-3.5-turbo": _p("0.50", "1.50"),
        "gpt-3.5-turbo-instruct": _p("1.50", "2.00"),
        "davinci-002": _p("2.00", "2.00"),
        "babbage-002": _p("0.40", "0.40"),
        # Anthropic
        "claude-opus-4": _p("15.00", "75.00", "1.50"),
        "claude-sonnet-4": _p("3.00", "15.00", "0.30"),
        "claude-3-5-haiku": _p("0.80", "4.00", "0.08"),
        # Cerebras
        "llama3.1-8b": _p("0.10", "0.10"),
        "llama3.1-70b": _p("0.60", "0.60"),
    },
    PricingTier.PRIORITY: {
        "gpt-5": _p("2.50", "20.00", "0.25"),
        "gpt-5-mini": _p("0.45", "3.60", "0.045"),
        "gpt-4.1": _p("3.50", "14.00", "0.875"),
        "gpt-4.1-mini": _p("0.70", "2.80", "0.175"),
        "gpt-4.1-nano": _p("0.20", "0.80", "0.05"),
        "gpt-4o": _p("4.25", "17.00", "2.125"),
        "gpt-4o-2024-05-13": _p("8.75", "26.25"),
        "gpt-4o-mini": _p("0.25", "1.00", "0.125"),
        "o3": _p("3.50", "14.00", "0.875"),
        "o4-mini": _p("2.00", "8.00", "0.50"),
    },
}


def get_pricing(
    model_name: str,
    tier: PricingTier = PricingTier.STANDARD,
    prices: dict[PricingTier, dict[str, ModelPrice]] | None = None,
) -> ModelPrice:
    """Exact name, then model family, then the standard tier, then DEFAULT_PRICE."""
    table = prices if prices is not None else TEXT_PRICES
    found = lookup_by_family(table.get(tier, {}), model_name)
    if found is not None:
        return found
    if tier != PricingTier.STANDARD:
        return get_pricing(model_name, PricingTier.STANDARD, table)
    return DEFAULT_PRICE


def calculate_cost(
    price: ModelPrice,
    input_tokens: int,
    output_tokens: int,
    cached_tokens: int = 0,
) -> Decimal:
    """Cost in USD. Cached tokens are billed once, at the cached rate if the model has one."""
    cached = max(0, cached_tokens)
    fresh_input = max(0, input_tokens - cached)
    cached_rate = price.cached_input if price.cached_input is not None else price.input

    return (
        Decimal(fresh_input) * price.input
        + Decimal(cached) * cached_rate
        + Decimal(max(0, output_tokens)) * price.output
    ) / PER_MILLION
