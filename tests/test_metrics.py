from __future__ import annotations

import pandas as pd
import pytest

from simulador_becas.eval.metrics import (
    applied_offer_frequency,
    eligibility_rate,
    savings_distribution_stats,
    stacking_stability,
)


def test_eligibility_rate_counts_reason_codes() -> None:
    results = [
        {
            "eligible_df": pd.DataFrame({"code": ["A", "B"]}),
            "ineligible_df": pd.DataFrame({"code": ["C"], "reasons": [["NEM_BELOW_MIN", "NO_SLOTS"]]}),
        },
        {
            "eligible_df": pd.DataFrame({"code": []}),
            "ineligible_df": pd.DataFrame({"code": ["C"], "reasons": [["NO_SLOTS"]]}),
        },
    ]

    metrics = eligibility_rate(results)

    assert metrics["eligible_count"] == 2
    assert metrics["total_count"] == 4
    assert metrics["eligibility_rate"] == pytest.approx(0.5)
    assert metrics["ineligible_reason_breakdown"] == {"NEM_BELOW_MIN": 1, "NO_SLOTS": 2}


def test_savings_stats_skip_missing_values() -> None:
    stats = savings_distribution_stats({"a": 100.0, "b": 0.0, "c": None, "d": 300.0})

    assert stats["count"] == 3
    assert stats["mean"] == pytest.approx(400 / 3)
    assert stats["median"] == pytest.approx(100.0)
    assert stats["zero_savings_count"] == 1
    assert savings_distribution_stats({})["count"] == 0


def test_applied_offer_frequency() -> None:
    assert applied_offer_frequency({"x": ["A", "B"], "y": ["B"]}) == {"A": 1, "B": 2}


def test_stacking_stability_raises_on_mismatch() -> None:
    assert stacking_stability({"x": ["A"]}, {"x": ["A"]})["is_stable"] is True

    with pytest.raises(AssertionError, match="stability"):
        stacking_stability({"x": ["A", "B"]}, {"x": ["B", "A"]})
