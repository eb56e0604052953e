# User value: This file turns token counts into a cost readout so users see spend without mistaking it for quality.
from typing import Any, Literal, Mapping

from config import DISPLAY_CURRENCY, USD_TO_DISPLAY_RATE

CostCategory = Literal["low", "medium", "heavy"]

# USD per 1M tokens.
PRICING = {
    "claude-3-opus-20240229": {"input": 15.00, "output": 75.00},
    "claude-3-sonnet-20240229": {"input": 3.00, "output": 15.00},
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "default": {"input": 3.00, "output": 15.00},
}

# Upper bounds in display currency; anything above the last is "heavy".
COST_CATEGORY_THRESHOLDS = (("low", 0.50), ("medium", 2.00))

DISCLAIMER = "Token metrics are cost signals only. Lower cost does NOT mean higher quality or correctness."
DISCLAIMER_SHORT = "Cost != Quality"

_CATEGORY_MARKERS = {"low": "[LOW]", "medium": "[MEDIUM]", "heavy": "[HEAVY]"}


def _round(value: float, places: int) -> float:
    return round(float(value), places)


# User value: looks up model pricing with a safe default so unknown models still get a cost readout.
def pricing_for(model: str | None) -> tuple[str, dict]:
    if model and model != "default" and model in PRICING:
        return "standard", PRICING[model]
    return "default", PRICING["default"]


# User value: maps spend to a simple band so users can compare jobs at a glance.
def cost_category(display_cost: float) -> CostCategory:
    cost = max(0.0, float(display_cost or 0.0))
    for name, upper in COST_CATEGORY_THRESHOLDS:
        if cost < upper:
            return name
    return "heavy"


# User value: returns one complete usage report so API and proof views show the same numbers.
def calculate(
    result: Mapping[str, Any],
    *,
    exchange_rate: float = USD_TO_DISPLAY_RATE,
    display_currency: str = DISPLAY_CURRENCY,
) -> dict:
    usage = result.get("token_usage") or {}
    model = usage.get("model_used") or "default"
    pricing_tier, pricing = pricing_for(model)

    tokens_in = int(usage.get("tokens_in") or 0)
    tokens_out = int(usage.get("tokens_out") or 0)
    total_tokens = tokens_in + tokens_out

    input_cost_usd = (tokens_in / 1_000_000) * pricing["input"]
    output_cost_usd = (tokens_out / 1_000_000) * pricing["output"]
    total_cost_usd = input_cost_usd + output_cost_usd
    total_cost_display = total_cost_usd * exchange_rate

    execution_time_ms = int(result.get("execution_time_ms") or 0)
    if execution_time_ms > 0:
        tokens_per_second = _round(total_tokens / (execution_time_ms / 1000), 2)
        relative_efficiency_score = min(1.0, 5000 / execution_time_ms)
    else:
        tokens_per_second = None
        relative_efficiency_score = None

    return {
        "tokens_in": tokens_in,
        "tokens_out": tokens_out,
        "total_tokens": total_tokens,
        "model_used": model,
        "timing": {
            "execution_time_ms": execution_time_ms,
            "total_time_ms": execution_time_ms,
        },
        "cost": {
            "input_cost_usd": _round(input_cost_usd, 6),
            "output_cost_usd": _round(output_cost_usd, 6),
            "total_cost_usd": _round(total_cost_usd, 6),
            "total_cost_display": _round(total_cost_display, 4),
            "display_currency": display_currency,
            "exchange_rate_usd_display": exchange_rate,
            "pricing_tier": pricing_tier,
        },
        "efficiency": {
            "tokens_per_second": tokens_per_second,
            "cost_category": cost_category(total_cost_display),
            "relative_efficiency_score": relative_efficiency_score,
        },
        "disclaimer": DISCLAIMER,
        "disclaimer_short": DISCLAIMER_SHORT,
    }


# User value: renders the usage report as plain text for logs and summary documents.
def format_for_display(metrics: Mapping[str, Any]) -> str:
    category = metrics["efficiency"]["cost_category"]
    cost = metrics["cost"]
    return "\n".join(
        [
            f"Token Usage: {metrics['total_tokens']:,} tokens",
            f"  - Input:  {metrics['tokens_in']:,}",
            f"  - Output: {metrics['tokens_out']:,}",
            "",
            f"Cost: {_CATEGORY_MARKERS.get(category, '[?]')} {category.upper()}",
            f"  - USD: ${cost['total_cost_usd']:.4f}",
            f"  - {cost['display_currency']}: {cost['total_cost_display']:.2f}",
            "",
            f"Model: {metrics['model_used']}",
            f"Time: {metrics['timing']['execution_time_ms']}ms",
            "",
            f"{metrics['disclaimer_short']}: {metrics['disclaimer']}",
        ]
    )
