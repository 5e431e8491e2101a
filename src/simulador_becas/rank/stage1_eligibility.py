from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional

import pandas as pd

from simulador_becas.normalize.careers import CareerLookup
from simulador_becas.normalize.schema import (
    ApplicantProfile,
    CareerRecord,
    DiscountType,
    EligibilityResult,
    FailureReason,
    ScholarshipOffer,
)
from simulador_becas.normalize.text import fold_list, fold_text
from simulador_becas.rank.named_exceptions import (
    DEFAULT_NAMED_EXCEPTIONS,
    NamedExceptionTable,
    resolve_mixed_percentage,
)
from simulador_becas.rank.policy import ReasonPolicy

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EvaluationContext:
    today: date
    careers: Optional[CareerLookup]
    exceptions: NamedExceptionTable
    career: Optional[CareerRecord] = None


Predicate = Callable[[ScholarshipOffer, ApplicantProfile, EvaluationContext], Optional[FailureReason]]


def _score(value: float) -> str:
    return f"{value:g}"


def _check_nem(offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext) -> FailureReason | None:
    if not offer.min_nem:
        return None
    if applicant.nem is None or applicant.nem < offer.min_nem:
        return FailureReason("NEM_BELOW_MIN", f"Requiere NEM mínimo {offer.min_nem:.1f}")
    return None


def _check_paes(offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext) -> FailureReason | None:
    if not offer.min_paes:
        return None
    if not applicant.took_paes or applicant.paes_score() < offer.min_paes:
        return FailureReason("PAES_BELOW_MIN", f"Requiere PAES mínimo {_score(offer.min_paes)}")
    return None


def _check_ranking(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if not offer.min_ranking:
        return None
    if applicant.ranking is None or applicant.ranking < offer.min_ranking:
        return FailureReason("RANKING_BELOW_MIN", f"Requiere ranking mínimo {_score(offer.min_ranking)}")
    return None


def _check_state_scholarship(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if offer.requires_state_scholarship is None:
        return None
    if bool(applicant.uses_state_scholarships) == offer.requires_state_scholarship:
        return None
    if offer.requires_state_scholarship:
        return FailureReason("STATE_SCHOLARSHIP_REQUIRED", "El estudiante no indicó que usa becas del estado")
    return FailureReason("STATE_SCHOLARSHIP_EXCLUDED", "No aplica para estudiantes con becas del estado")


def _check_region(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    region = fold_text(applicant.region)
    if offer.requires_region and not region:
        return FailureReason("REGION_REQUIRED", "Requiere región de residencia")
    if offer.excluded_region and region == fold_text(offer.excluded_region):
        return FailureReason("REGION_EXCLUDED", f"No aplica para región {offer.excluded_region}")
    if offer.required_region and region != fold_text(offer.required_region):
        return FailureReason("REGION_NOT_ALLOWED", f"Requiere región {offer.required_region}")
    return None


def _check_gender(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if not offer.required_gender:
        return None
    if fold_text(applicant.gender) != fold_text(offer.required_gender):
        return FailureReason("GENDER_MISMATCH", f"Requiere género {offer.required_gender}")
    return None


def _check_foreign_status(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if offer.requires_foreign is None:
        return None
    if offer.requires_foreign and not applicant.is_foreign:
        return FailureReason("FOREIGN_REQUIRED", "Requiere ser extranjero")
    if not offer.requires_foreign and applicant.is_foreign:
        return FailureReason("FOREIGN_EXCLUDED", "No aplica para extranjeros")
    return None


def _check_chile_residency(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if offer.requires_chile_residency is None:
        return None
    if offer.requires_chile_residency and not applicant.resides_in_chile:
        return FailureReason("RESIDENCY_REQUIRED", "Requiere residir en Chile")
    if not offer.requires_chile_residency and applicant.resides_in_chile:
        return FailureReason("RESIDENCY_EXCLUDED", "No aplica para residentes en Chile")
    return None


def _check_nationality(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if not offer.required_nationality:
        return None
    if fold_text(applicant.nationality) != fold_text(offer.required_nationality):
        return FailureReason("NATIONALITY_MISMATCH", f"Requiere nacionalidad {offer.required_nationality}")
    return None


def _check_career(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    allowed = fold_list(list(offer.eligible_careers))
    if not allowed:
        return None
    if fold_text(applicant.career) in allowed:
        return None

    carve_out = ctx.exceptions.carve_out_for(offer.code)
    if carve_out is not None and carve_out.applies_to(applicant.gender):
        if carve_out.matches_career(applicant.career):
            return None
        return FailureReason("CAREER_NOT_ALLOWED", carve_out.message)
    return FailureReason("CAREER_NOT_ALLOWED", "No aplica para la carrera seleccionada")


def _check_program_type(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    excluded = fold_list(list(offer.excluded_program_types))
    program_type = fold_text(applicant.program_type)
    if excluded and program_type and program_type in excluded:
        return FailureReason("PROGRAM_EXCLUDED", f"No aplica para programa {applicant.program_type}")
    return None


def _check_modality(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    allowed = fold_list(list(offer.modalities))
    if not allowed:
        return None
    if ctx.career is None:
        if applicant.career_id is None and not applicant.career:
            return FailureReason(
                "MODALITY_CAREER_REQUIRED", "Requiere una carrera seleccionada para verificar modalidad"
            )
        return FailureReason("CAREER_NOT_FOUND", "No se encontró la carrera seleccionada")
    modality = fold_text(ctx.career.modality)
    if not modality or modality not in allowed:
        return FailureReason("MODALITY_NOT_ALLOWED", "No aplica para la modalidad de la carrera seleccionada")
    return None


def _check_years_since_graduation(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if not offer.max_years_since_graduation or not applicant.graduation_year:
        return None
    if ctx.today.year - applicant.graduation_year > offer.max_years_since_graduation:
        return FailureReason(
            "GRADUATION_TOO_OLD", f"Máximo {offer.max_years_since_graduation} años desde egreso"
        )
    return None


def _check_years_since_paes(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    # No PAES year is collected; graduation year stands in for it.
    if not offer.max_years_since_paes or not applicant.graduation_year:
        return None
    if ctx.today.year - applicant.graduation_year > offer.max_years_since_paes:
        return FailureReason("PAES_TOO_OLD", f"Máximo {offer.max_years_since_paes} años desde PAES")
    return None


def _check_min_age(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if offer.min_age is None:
        return None
    if not applicant.birth_year:
        return FailureReason(
            "AGE_UNKNOWN",
            f"Requiere edad mínima {offer.min_age} años (año de nacimiento no proporcionado)",
        )
    age = ctx.today.year - applicant.birth_year
    if age < offer.min_age:
        return FailureReason(
            "AGE_BELOW_MIN", f"Requiere edad mínima {offer.min_age} años (edad actual: {age} años)"
        )
    return None


def _check_validity(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if ctx.today < offer.effective_from:
        return FailureReason(
            "NOT_YET_VALID", f"Beca no vigente hasta {offer.effective_from.strftime('%d-%m-%Y')}"
        )
    if offer.effective_until is not None and ctx.today > offer.effective_until:
        return FailureReason("EXPIRED", f"Beca vencida desde {offer.effective_until.strftime('%d-%m-%Y')}")
    return None


def _check_capacity(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if offer.total_slots is None:
        return None
    if offer.used_slots >= offer.total_slots:
        return FailureReason("NO_SLOTS", "No hay cupos disponibles")
    return None


def _check_institution(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if not offer.required_institution:
        return None
    if fold_text(applicant.institution_id) != fold_text(offer.required_institution):
        return FailureReason("INSTITUTION_MISMATCH", "Requiere institución específica")
    return None


def _check_max_decile(
    offer: ScholarshipOffer, applicant: ApplicantProfile, ctx: EvaluationContext
) -> FailureReason | None:
    if offer.max_decile is None:
        return None
    if applicant.effective_decile() > offer.max_decile:
        return FailureReason("DECILE_ABOVE_MAX", f"Requiere decil máximo {offer.max_decile}")
    return None


# Evaluation order decides which message LAST_FAILURE / FIRST_FAILURE reports.
PREDICATES: tuple[Predicate, ...] = (
    _check_nem,
    _check_paes,
    _check_ranking,
    _check_state_scholarship,
    _check_region,
    _check_gender,
    _check_foreign_status,
    _check_chile_residency,
    _check_nationality,
    _check_career,
    _check_program_type,
    _check_modality,
    _check_years_since_graduation,
    _check_years_since_paes,
    _check_min_age,
    _check_validity,
    _check_capacity,
    _check_institution,
    _check_max_decile,
)


def _resolve_career(applicant: ApplicantProfile, careers: CareerLookup | None) -> CareerRecord | None:
    if careers is None:
        return None
    if applicant.career_id is not None:
        return careers.get(applicant.career_id)
    return careers.by_name(applicant.career)


def _career_context(applicant: ApplicantProfile, career: CareerRecord | None) -> dict[str, str]:
    if career is not None:
        return career.context()
    return {"nivel_academico": "", "modalidad_programa": applicant.modality or ""}


def provisional_discount(
    offer: ScholarshipOffer,
    applicant: ApplicantProfile,
    ctx: EvaluationContext,
) -> tuple[float, float]:
    """(percentage, fixed_amount) an eligible offer carries into prelation, before any stacking."""
    percentage = 0.0
    fixed_amount = 0.0
    context = _career_context(applicant, ctx.career)

    if offer.discount_type == DiscountType.PERCENTAGE:
        percentage = offer.percentage or 0.0
    elif offer.discount_type == DiscountType.FIXED_AMOUNT:
        fixed_amount = offer.fixed_amount or 0.0
    else:
        resolved = None
        if offer.mixed_rules and (ctx.career is not None or applicant.modality):
            resolved = resolve_mixed_percentage(offer.mixed_rules, offer.mixed_default, context)
        if resolved is None:
            resolved = offer.percentage if offer.percentage is not None else offer.mixed_default
        percentage = resolved or 0.0
        fixed_amount = offer.fixed_amount or 0.0

    override = ctx.exceptions.override_for(offer.code)
    if override is not None:
        overridden = resolve_mixed_percentage(override.rules, override.default, context)
        if overridden is not None:
            percentage = overridden
    return float(percentage), float(fixed_amount)


def evaluate(
    offer: ScholarshipOffer,
    applicant: ApplicantProfile,
    *,
    careers: CareerLookup | None = None,
    today: date | None = None,
    exceptions: NamedExceptionTable | None = None,
    reason_policy: ReasonPolicy = ReasonPolicy.LAST_FAILURE,
) -> EligibilityResult:
    ctx = EvaluationContext(
        today=today or date.today(),
        careers=careers,
        exceptions=exceptions if exceptions is not None else DEFAULT_NAMED_EXCEPTIONS,
        career=_resolve_career(applicant, careers),
    )

    failures = tuple(
        failure for failure in (predicate(offer, applicant, ctx) for predicate in PREDICATES) if failure
    )
    if failures:
        chosen = failures[0] if reason_policy == ReasonPolicy.FIRST_FAILURE else failures[-1]
        return EligibilityResult(offer=offer, eligible=False, reason=chosen.message, failures=failures)

    percentage, fixed_amount = provisional_discount(offer, applicant, ctx)
    return EligibilityResult(offer=offer, eligible=True, percentage=percentage, fixed_amount=fixed_amount)


def evaluate_catalog(
    offers: Iterable[ScholarshipOffer],
    applicant: ApplicantProfile,
    **kwargs,
) -> list[EligibilityResult]:
    results = [evaluate(offer, applicant, **kwargs) for offer in offers]
    logger.debug(
        "Evaluated %d offers: %d eligible.",
        len(results),
        sum(1 for result in results if result.eligible),
    )
    return results


def eligibility_frame(results: Iterable[EligibilityResult]) -> tuple[pd.DataFrame, pd.DataFrame]:
    rows = [
        {
            "code": result.offer.code,
            "name": result.offer.name,
            "priority": result.offer.priority,
            "category": result.offer.category.value if result.offer.category else None,
            "eligible": result.eligible,
            "reason": result.reason,
            "reasons": result.reason_codes(),
            "percentage": result.percentage,
            "fixed_amount": result.fixed_amount,
        }
        for result in results
    ]
    columns = ["code", "name", "priority", "category", "eligible", "reason", "reasons", "percentage", "fixed_amount"]
    with_reasons_df = pd.DataFrame(rows, columns=columns)

    is_ineligible = with_reasons_df["reasons"].map(bool).astype(bool)
    ineligible_df = with_reasons_df[is_ineligible].copy()
    eligible_df = with_reasons_df[~is_ineligible].copy()

    return eligible_df, ineligible_df
