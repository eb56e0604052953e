# User value: This test validates cost readouts so users see stable numbers that never pretend to measure quality.
import unittest

from services.usage_accountant import (
    DISCLAIMER,
    DISCLAIMER_SHORT,
    calculate,
    cost_category,
    format_for_display,
    pricing_for,
)


def _result(tokens_in, tokens_out, model="claude-3-haiku-20240307", elapsed_ms=2000):
    return {
        "token_usage": {"tokens_in": tokens_in, "tokens_out": tokens_out, "model_used": model},
        "execution_time_ms": elapsed_ms,
    }


class UsageAccountantUnitTests(unittest.TestCase):
    def test_known_model_pricing(self):
        out = calculate(_result(1_000_000, 1_000_000), exchange_rate=4.65, display_currency="MYR")
        self.assertEqual(out["total_tokens"], 2_000_000)
        self.assertEqual(out["cost"]["input_cost_usd"], 0.25)
        self.assertEqual(out["cost"]["output_cost_usd"], 1.25)
        self.assertEqual(out["cost"]["total_cost_usd"], 1.5)
        self.assertAlmostEqual(out["cost"]["total_cost_display"], 6.975, places=4)
        self.assertEqual(out["cost"]["pricing_tier"], "standard")
        self.assertEqual(out["cost"]["display_currency"], "MYR")
        self.assertEqual(out["efficiency"]["cost_category"], "heavy")

    def test_unknown_model_uses_default_tier(self):
        out = calculate(_result(1000, 1000, model="some-new-model"), exchange_rate=4.65, display_currency="MYR")
        self.assertEqual(out["cost"]["pricing_tier"], "default")
        self.assertAlmostEqual(out["cost"]["total_cost_usd"], 0.018, places=6)
        self.assertEqual(out["efficiency"]["cost_category"], "low")

    def test_zero_elapsed_leaves_rates_empty(self):
        out = calculate(_result(100, 100, elapsed_ms=0), exchange_rate=1.0, display_currency="USD")
        self.assertIsNone(out["efficiency"]["tokens_per_second"])
        self.assertIsNone(out["efficiency"]["relative_efficiency_score"])
        self.assertEqual(out["efficiency"]["cost_category"], "low")

    def test_rates_with_elapsed_time(self):
        out = calculate(_result(1000, 300, elapsed_ms=2000), exchange_rate=1.0, display_currency="USD")
        self.assertEqual(out["efficiency"]["tokens_per_second"], 650.0)
        self.assertEqual(out["efficiency"]["relative_efficiency_score"], 1.0)

        slow = calculate(_result(1000, 300, elapsed_ms=10_000), exchange_rate=1.0, display_currency="USD")
        self.assertEqual(slow["efficiency"]["relative_efficiency_score"], 0.5)

    def test_cost_category_boundaries(self):
        self.assertEqual(cost_category(0.49), "low")
        self.assertEqual(cost_category(0.50), "medium")
        self.assertEqual(cost_category(1.99), "medium")
        self.assertEqual(cost_category(2.00), "heavy")
        self.assertEqual(cost_category(-1), "low")

    def test_pricing_for(self):
        self.assertEqual(pricing_for(None)[0], "default")
        self.assertEqual(pricing_for("claude-3-opus-20240229")[1]["output"], 75.00)

    def test_disclaimers_always_present(self):
        out = calculate({}, exchange_rate=4.65, display_currency="MYR")
        self.assertEqual(out["total_tokens"], 0)
        self.assertEqual(out["disclaimer"], DISCLAIMER)
        self.assertEqual(out["disclaimer_short"], DISCLAIMER_SHORT)

    def test_format_for_display(self):
        text = format_for_display(calculate(_result(12_000, 3_000), exchange_rate=4.65, display_currency="MYR"))
        self.assertIn("Token Usage: 15,000 tokens", text)
        self.assertIn("[LOW] LOW", text)
        self.assertIn("MYR:", text)
        self.assertIn("Cost != Quality", text)


if __name__ == "__main__":
    unittest.main()
