from __future__ import annotations

import pandas as pd
import pytest

from simulador_becas.rank.discounts import (
    annual_savings,
    calculate_decile,
    combined_discount,
    decile_from_table,
    decile_scaling_factor,
    fixed_discount,
    paes_total,
    paes_weighted,
    percentage_discount,
    program_savings,
    selection_score,
    total_discount_percentage,
)


def test_percentage_discount_caps_at_full_base() -> None:
    assert percentage_discount(2_500_000, 20) == pytest.approx(500_000)
    assert percentage_discount(1_000_000, 150) == pytest.approx(1_000_000)


def test_fixed_discount_never_exceeds_base() -> None:
    assert fixed_discount(150_000, 100_000) == 100_000
    assert fixed_discount(80_000, 100_000) == 80_000


def test_combined_discount_takes_larger_path_without_summing() -> None:
    assert combined_discount(200_000, 150_000) == 200_000
    assert combined_discount(50_000, 150_000) == 150_000


def test_decile_scaling_factor_has_floor() -> None:
    assert decile_scaling_factor(1) == pytest.approx(1.0)
    assert decile_scaling_factor(5) == pytest.approx(0.8)
    assert decile_scaling_factor(10) == pytest.approx(0.55)
    assert decile_scaling_factor(20) == pytest.approx(0.5)


def test_calculate_decile_uses_per_capita_bands() -> None:
    assert calculate_decile(400_000, 4) == 1
    assert calculate_decile(600_000, 3) == 2
    assert calculate_decile(1_800_000, 2) == 7
    assert calculate_decile(10_000_000, 1) == 10


def test_calculate_decile_defaults_to_highest_when_data_missing() -> None:
    assert calculate_decile(None, 3) == 10
    assert calculate_decile(500_000, 0) == 10


def test_decile_from_table_matches_band() -> None:
    deciles_df = pd.DataFrame(
        [
            {"decil": 2, "rango_ingreso_min": 100_001, "rango_ingreso_max": 200_000},
            {"decil": 1, "rango_ingreso_min": 0, "rango_ingreso_max": 100_000},
            {"decil": 3, "rango_ingreso_min": 200_001, "rango_ingreso_max": None},
        ]
    )

    assert decile_from_table(300_000, 2, deciles_df) == 2
    assert decile_from_table(900_000, 1, deciles_df) == 3
    assert decile_from_table(50_000, 1, deciles_df) == 1


def test_savings_helpers() -> None:
    assert annual_savings(2_500_000, 1_900_000) == pytest.approx(600_000)
    assert annual_savings(1_000, 2_000) == 0.0
    assert program_savings(600_000, 4) == pytest.approx(2_400_000)
    assert total_discount_percentage(2_500_000, 1_900_000) == 24
    assert total_discount_percentage(0, 0) == 0


def test_paes_helpers_ignore_out_of_range_scores() -> None:
    scores = {"math": 700, "language": 600, "science": 50, "history": None}

    assert paes_total(scores) == pytest.approx(1_300)
    assert paes_weighted(scores) == 390


def test_selection_score_rescales_nem() -> None:
    assert selection_score(7.0, None, None) == 100
    assert selection_score(None, 800, 700) == 640
