from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

# Inclusive upper bound of monthly income per capita (CLP) for deciles 1..9.
DEFAULT_DECILE_UPPER_BOUNDS: tuple[float, ...] = (
    150_000.0,
    250_000.0,
    350_000.0,
    450_000.0,
    600_000.0,
    800_000.0,
    1_000_000.0,
    1_300_000.0,
    1_800_000.0,
)
HIGHEST_DECILE = 10
PAES_MIN_SCORE = 100.0
PAES_MAX_SCORE = 1000.0
DEFAULT_PAES_WEIGHTS: dict[str, float] = {
    "math": 0.3,
    "language": 0.3,
    "science": 0.2,
    "history": 0.2,
}
DEFAULT_SELECTION_WEIGHTS: dict[str, float] = {"nem": 0.1, "ranking": 0.1, "paes": 0.8}


def percentage_discount(base: float, pct: float) -> float:
    return float(base) * min(float(pct), 100.0) / 100.0


def fixed_discount(base: float, amount: float) -> float:
    return min(float(amount), float(base))


def combined_discount(pct_amount: float, fixed_amount: float) -> float:
    """Larger absolute discount wins; percentage and fixed paths are never summed."""
    return max(float(pct_amount), float(fixed_amount))


def decile_scaling_factor(decile: int) -> float:
    """Multiplier for the generic benefits path only (1.0 at decile 1, floor 0.5)."""
    return max(0.5, 1.0 - (int(decile) - 1) * 0.05)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def calculate_decile(
    monthly_income: float | None,
    household_size: int | None,
    upper_bounds: Sequence[float] = DEFAULT_DECILE_UPPER_BOUNDS,
) -> int:
    if _is_missing(monthly_income) or _is_missing(household_size):
        return HIGHEST_DECILE
    income = float(monthly_income)
    members = int(household_size)
    if income <= 0 or members <= 0:
        return HIGHEST_DECILE

    per_capita = income / members
    index = int(np.searchsorted(np.asarray(upper_bounds, dtype=float), per_capita, side="left"))
    return min(index + 1, HIGHEST_DECILE)


def decile_from_table(
    monthly_income: float | None,
    household_size: int | None,
    deciles_df: pd.DataFrame,
) -> int:
    """Band lookup against a `deciles` table with `decil`, `rango_ingreso_min/max` columns."""
    if _is_missing(monthly_income) or _is_missing(household_size):
        return HIGHEST_DECILE
    if float(monthly_income) <= 0 or int(household_size) <= 0 or deciles_df.empty:
        return HIGHEST_DECILE

    per_capita = float(monthly_income) / int(household_size)
    sort_column = "orden_visual" if "orden_visual" in deciles_df.columns else "decil"
    ordered = deciles_df.sort_values(by=sort_column, kind="mergesort")
    for _, row in ordered.iterrows():
        lower = float(row.get("rango_ingreso_min") or 0.0)
        upper_value = row.get("rango_ingreso_max")
        upper = math.inf if _is_missing(upper_value) else float(upper_value)
        if lower <= per_capita <= upper:
            return int(row["decil"])
    return HIGHEST_DECILE


def annual_savings(base: float, final: float) -> float:
    return max(0.0, float(base) - float(final))


def program_savings(annual: float, years: float) -> float:
    return float(annual) * float(years)


def total_discount_percentage(base: float, final: float) -> int:
    if base <= 0:
        return 0
    return int(round((float(base) - float(final)) / float(base) * 100.0))


def _valid_paes(score: float | None) -> bool:
    return score is not None and PAES_MIN_SCORE <= float(score) <= PAES_MAX_SCORE


def paes_total(scores: Mapping[str, float | None]) -> float:
    return float(sum(float(value) for value in scores.values() if _valid_paes(value)))


def paes_weighted(
    scores: Mapping[str, float | None],
    weights: Mapping[str, float] | None = None,
) -> int:
    active_weights = weights or DEFAULT_PAES_WEIGHTS
    total = 0.0
    for subject, weight in active_weights.items():
        value = scores.get(subject)
        if _valid_paes(value):
            total += float(value) * weight
    return int(round(total))


def selection_score(
    nem: float | None,
    ranking: float | None,
    paes: float | None,
    weights: Mapping[str, float] | None = None,
) -> int:
    active_weights = weights or DEFAULT_SELECTION_WEIGHTS
    total = 0.0
    if nem is not None and 1.0 <= nem <= 7.0:
        # NEM 1.0-7.0 rescaled onto the PAES 100-1000 range.
        nem_scaled = ((nem - 1.0) / 6.0) * 900.0 + 100.0
        total += nem_scaled * active_weights["nem"]
    if ranking is not None and 0 <= ranking <= 1000:
        total += ranking * active_weights["ranking"]
    if paes is not None and _valid_paes(paes):
        total += paes * active_weights["paes"]
    return int(round(total))
