from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Sequence

from simulador_becas.normalize.careers import CareerLookup
from simulador_becas.normalize.schema import (
    ApplicantProfile,
    EligibilityResult,
    ScholarshipOffer,
    SimulationResult,
    StackedDiscountResult,
)
from simulador_becas.rank.named_exceptions import NamedExceptionTable
from simulador_becas.rank.policy import EngineConfig, StackingPolicy
from simulador_becas.rank.stage1_eligibility import evaluate_catalog
from simulador_becas.rank.stage2_prelation import resolve

logger = logging.getLogger(__name__)


def _base_tuition_for(applicant: ApplicantProfile, careers: CareerLookup | None) -> float:
    if careers is None:
        raise ValueError("A base tuition or a career lookup is required to simulate.")
    tuition = careers.tuition_for(applicant.career_id, applicant.career)
    if tuition <= 0:
        raise ValueError(
            f"No tuition found for career id={applicant.career_id!r} name={applicant.career!r}."
        )
    return tuition


def _program_years(applicant: ApplicantProfile, careers: CareerLookup | None, config: EngineConfig) -> float:
    if careers is not None:
        career = careers.get(applicant.career_id) or careers.by_name(applicant.career)
        years = career.duration_years() if career is not None else None
        if years:
            return years
    return float(config.default_program_years)


def simulate(
    applicant: ApplicantProfile,
    catalog: Sequence[ScholarshipOffer],
    *,
    careers: CareerLookup | None = None,
    base_tuition: float | None = None,
    state_catalog: Sequence[ScholarshipOffer] = (),
    config: EngineConfig | None = None,
    exceptions: NamedExceptionTable | None = None,
    today: date | None = None,
) -> SimulationResult:
    """Full run: state scholarships first, internal offers on what remains."""
    active_config = config or EngineConfig.baseline()
    base = float(base_tuition) if base_tuition is not None else _base_tuition_for(applicant, careers)
    evaluate_kwargs = {
        "careers": careers,
        "today": today,
        "exceptions": exceptions,
        "reason_policy": active_config.reason_policy,
    }

    state_results: list[EligibilityResult] = []
    if state_catalog:
        state_results = evaluate_catalog(state_catalog, applicant, **evaluate_kwargs)

    if applicant.uses_state_scholarships and state_results:
        # State benefits always stack among themselves.
        state_config = replace(active_config, stacking_policy=StackingPolicy.STACK_ALL_COMPATIBLE)
        state_stage = resolve(state_results, base, config=state_config)
    else:
        state_stage = StackedDiscountResult(base_tuition=base, final_tuition=base)

    internal_results = evaluate_catalog(catalog, applicant, **evaluate_kwargs)
    internal_stage = resolve(internal_results, state_stage.final_tuition, config=active_config)

    result = SimulationResult(
        base_tuition=base,
        state_stage=state_stage,
        internal_stage=internal_stage,
        eligibility=tuple(internal_results),
        state_eligibility=tuple(state_results),
        program_years=_program_years(applicant, careers, active_config),
    )
    logger.info(
        "Simulation: base=%.0f final=%.0f annual_savings=%.0f (%d state, %d internal offers applied).",
        result.base_tuition,
        result.final_tuition,
        result.annual_savings,
        len(state_stage.applied),
        len(internal_stage.applied),
    )
    return result
