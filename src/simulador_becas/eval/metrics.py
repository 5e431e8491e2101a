from __future__ import annotations

from collections import Counter
from typing import Any

import pandas as pd


def eligibility_rate(
    per_applicant_results: list[dict[str, Any]],
) -> dict[str, Any]:
    total_count = 0
    eligible_count = 0
    reason_counter: Counter[str] = Counter()

    for result in per_applicant_results:
        eligible_df: pd.DataFrame = result["eligible_df"]
        ineligible_df: pd.DataFrame = result["ineligible_df"]
        eligible_count += int(len(eligible_df))
        total_count += int(len(eligible_df) + len(ineligible_df))

        if "reasons" not in ineligible_df.columns or ineligible_df.empty:
            continue
        for reasons in ineligible_df["reasons"]:
            if not isinstance(reasons, list):
                continue
            for reason in reasons:
                if isinstance(reason, str) and reason:
                    reason_counter[reason] += 1

    rate = (eligible_count / total_count) if total_count > 0 else 0.0
    return {
        "eligible_count": eligible_count,
        "total_count": total_count,
        "eligibility_rate": rate,
        "ineligible_reason_breakdown": dict(sorted(reason_counter.items())),
    }


def savings_distribution_stats(annual_savings: dict[str, float]) -> dict[str, Any]:
    values = [float(value) for value in annual_savings.values() if value is not None and not pd.isna(value)]
    if not values:
        return {"count": 0, "mean": 0.0, "median": 0.0, "max": 0.0, "zero_savings_count": 0}

    series = pd.Series(values, dtype="float64")
    return {
        "count": len(values),
        "mean": float(series.mean()),
        "median": float(series.median()),
        "max": float(series.max()),
        "zero_savings_count": int((series <= 0).sum()),
    }


def applied_offer_frequency(per_applicant_applied: dict[str, list[str]]) -> dict[str, int]:
    counter: Counter[str] = Counter()
    for codes in per_applicant_applied.values():
        counter.update(codes)
    return dict(sorted(counter.items()))


def stacking_stability(
    run_one: dict[str, list[str]],
    run_two: dict[str, list[str]],
) -> dict[str, Any]:
    """Two runs over the same inputs must apply the same offers in the same order."""
    mismatches: list[dict[str, Any]] = []
    for applicant_id in sorted(set(run_one) | set(run_two)):
        codes_one = run_one.get(applicant_id, [])
        codes_two = run_two.get(applicant_id, [])
        if codes_one != codes_two:
            mismatches.append({"applicant_id": applicant_id, "run_one": codes_one, "run_two": codes_two})

    is_stable = len(mismatches) == 0
    if not is_stable:
        raise AssertionError(f"Stacking stability check failed: {mismatches}")

    return {"is_stable": is_stable, "mismatches": mismatches}
