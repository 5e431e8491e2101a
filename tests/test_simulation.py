from __future__ import annotations

import pytest

from simulador_becas.eval.golden_applicants import EVAL_TODAY, get_golden_applicants, reference_catalog
from simulador_becas.normalize.schema import ApplicantProfile, SkipCause
from simulador_becas.rank.policy import EngineConfig, StackingPolicy
from simulador_becas.rank.simulation import simulate


def _golden(applicant_id: str):  # noqa: ANN202
    return next(item for item in get_golden_applicants() if item.applicant_id == applicant_id)


@pytest.mark.parametrize("golden", get_golden_applicants(), ids=lambda item: item.applicant_id)
def test_golden_applicants_match_expected_stacking(golden) -> None:  # noqa: ANN001
    catalog, state_catalog, careers = reference_catalog()

    result = simulate(
        golden.profile,
        catalog,
        careers=careers,
        base_tuition=golden.base_tuition,
        state_catalog=state_catalog,
        today=EVAL_TODAY,
    )

    assert tuple(result.internal_stage.applied_codes()) == golden.expected_applied
    assert result.final_tuition == pytest.approx(golden.expected_final_tuition)


def test_state_scholarships_are_applied_before_internal_offers() -> None:
    catalog, state_catalog, careers = reference_catalog()
    golden = _golden("golden_region_woman_stem_state")

    result = simulate(golden.profile, catalog, careers=careers, state_catalog=state_catalog, today=EVAL_TODAY)

    assert result.base_tuition == 4_200_000.0
    assert result.state_stage.applied_codes() == ["BEA", "BJGM"]
    assert result.state_stage.final_tuition == pytest.approx(1_900_000)
    assert result.internal_stage.base_tuition == pytest.approx(1_900_000)
    assert result.annual_savings == pytest.approx(4_200_000 - 865_687.5)
    assert result.program_years == 4.0


def test_state_offers_ignored_when_applicant_does_not_use_them() -> None:
    catalog, state_catalog, careers = reference_catalog()
    golden = _golden("golden_rm_high_nem_presencial")

    result = simulate(golden.profile, catalog, careers=careers, state_catalog=state_catalog, today=EVAL_TODAY)

    assert result.state_stage.applied == ()
    assert result.state_stage.final_tuition == result.base_tuition
    assert all(not item.eligible for item in result.state_eligibility)


def test_skip_causes_reported_for_reference_applicant() -> None:
    catalog, _, careers = reference_catalog()
    golden = _golden("golden_rm_high_nem_presencial")

    result = simulate(golden.profile, catalog, careers=careers, today=EVAL_TODAY)

    causes = {item.code: item.cause for item in result.internal_stage.skipped}
    assert causes == {"MERITO": SkipCause.BLOCKED, "CONVENIO": SkipCause.NOT_COMBINABLE}


def test_program_savings_use_career_duration() -> None:
    catalog, state_catalog, careers = reference_catalog()
    golden = _golden("golden_online_adult_postgrado")

    result = simulate(golden.profile, catalog, careers=careers, state_catalog=state_catalog, today=EVAL_TODAY)

    assert result.program_years == 2.0
    assert result.annual_savings == pytest.approx(2_800_000 - 1_577_000)
    assert result.program_savings == pytest.approx((2_800_000 - 1_577_000) * 2)


def test_unknown_career_uses_default_program_years_and_reason() -> None:
    catalog, _, careers = reference_catalog()
    golden = _golden("golden_stale_career_reference")
    config = EngineConfig(default_program_years=5)

    result = simulate(
        golden.profile,
        catalog,
        careers=careers,
        base_tuition=golden.base_tuition,
        config=config,
        today=EVAL_TODAY,
    )

    experiencia = next(item for item in result.eligibility if item.offer.code == "EXPERIENCIA")
    assert experiencia.reason_codes() == ["CAREER_NOT_FOUND"]
    assert result.program_years == 5.0


def test_single_best_policy_keeps_top_priority_offer() -> None:
    catalog, _, careers = reference_catalog()
    golden = _golden("golden_rm_high_nem_presencial")
    config = EngineConfig(stacking_policy=StackingPolicy.SINGLE_BEST)

    result = simulate(golden.profile, catalog, careers=careers, config=config, today=EVAL_TODAY)

    assert result.internal_stage.applied_codes() == ["EXCELENCIA"]
    assert result.final_tuition == pytest.approx(2_940_000)


def test_missing_base_tuition_raises() -> None:
    catalog, _, careers = reference_catalog()

    with pytest.raises(ValueError, match="No tuition found"):
        simulate(ApplicantProfile(career_id=999), catalog, careers=careers, today=EVAL_TODAY)
    with pytest.raises(ValueError, match="career lookup"):
        simulate(ApplicantProfile(), catalog, today=EVAL_TODAY)


def test_simulation_result_serializes() -> None:
    catalog, state_catalog, careers = reference_catalog()
    golden = _golden("golden_region_woman_stem_state")

    payload = simulate(
        golden.profile, catalog, careers=careers, state_catalog=state_catalog, today=EVAL_TODAY
    ).to_dict()

    assert payload["final_tuition"] == pytest.approx(865_687.5)
    assert [item["code"] for item in payload["internal_stage"]["applied"]] == ["MERITO", "STEM", "REGIONAL", "PRONTO_PAGO"]
    assert {"code": "CONVENIO", "cause": "NOT_COMBINABLE"} in payload["internal_stage"]["skipped"]
    ineligible_codes = {item["code"] for item in payload["ineligible"]}
    assert {"EXCELENCIA", "EXPERIENCIA", "CUPOS_AGOTADOS"} <= ineligible_codes
