"""Decile-scaled scoring for the generic `beneficios` catalog.

This path is independent from scholarship stacking: benefits are discounted off the
original base, scaled by the applicant's decile and summed per concept. Nothing in
`stage2_prelation` calls into this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from simulador_becas.normalize.schema import ApplicantProfile
from simulador_becas.rank.discounts import (
    combined_discount,
    decile_scaling_factor,
    fixed_discount,
    paes_total,
    percentage_discount,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_TUITION = 2_500_000.0
DEFAULT_ENROLLMENT_FEE = 150_000.0
UNSET_PRIORITY = 999

# Highest decile that still qualifies, per benefit type.
MAX_DECILE_BY_TYPE: dict[str, int] = {"BECA": 7, "FINANCIAMIENTO": 8, "FINANCIERO": 9}
TYPE_ORDER: dict[str, int] = {"BECA": 1, "FINANCIAMIENTO": 2, "FINANCIERO": 3}
TYPE_BASE_SCORE: dict[str, int] = {"BECA": 10, "FINANCIAMIENTO": 8, "FINANCIERO": 6}
TYPE_LABEL: dict[str, str] = {
    "BECA": "becas",
    "FINANCIAMIENTO": "financiamiento",
    "FINANCIERO": "beneficios financieros",
}

CONCEPT_TUITION = "A"
CONCEPT_ENROLLMENT = "M"


@dataclass(frozen=True, slots=True)
class BenefitRecord:
    code: str
    description: str
    benefit_type: str
    max_percentage: Optional[float] = None
    max_amount: Optional[float] = None
    origin: str = "INTERNO"
    concept: Optional[str] = CONCEPT_TUITION
    priority: Optional[int] = None
    active: bool = True
    requirements: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> BenefitRecord:
        def _get(*keys: str) -> Any:
            for key in keys:
                value = payload.get(key)
                if value is not None and not (isinstance(value, float) and pd.isna(value)):
                    return value
            return None

        max_percentage = _get("max_percentage", "porcentaje_maximo", "porcentajeMaximo")
        max_amount = _get("max_amount", "monto_maximo", "montoMaximo")
        priority = _get("priority", "prioridad")
        active = _get("active", "vigente")
        requirements = _get("requirements", "requisitos")
        return cls(
            code=str(_get("code", "codigo_beneficio", "codigoBeneficio", "id")),
            description=str(_get("description", "descripcion") or ""),
            benefit_type=str(_get("benefit_type", "tipo_beneficio", "tipoBeneficio") or "").upper(),
            max_percentage=float(max_percentage) if max_percentage is not None else None,
            max_amount=float(max_amount) if max_amount is not None else None,
            origin=str(_get("origin", "origen_beneficio", "origenBeneficio") or "INTERNO"),
            concept=_get("concept", "aplicacion_concepto", "aplicacionConcepto"),
            priority=int(priority) if priority is not None else None,
            active=True if active is None else bool(active),
            requirements=dict(requirements) if isinstance(requirements, Mapping) else {},
        )


@dataclass(frozen=True, slots=True)
class BenefitEligibility:
    benefit: BenefitRecord
    eligible: bool
    reason: str


@dataclass(frozen=True, slots=True)
class BenefitDiscount:
    benefit: BenefitRecord
    applies_to: str
    amount: float
    reason: str


@dataclass(frozen=True, slots=True)
class TuitionBreakdown:
    base_tuition: float
    base_enrollment: float
    discounts: tuple[BenefitDiscount, ...]
    total_discounts: float
    final_tuition: float
    final_enrollment: float

    @property
    def total_base(self) -> float:
        return self.base_tuition + self.base_enrollment

    @property
    def total_final(self) -> float:
        return self.final_tuition + self.final_enrollment


def _applicant_paes_total(applicant: ApplicantProfile) -> float:
    if not applicant.took_paes:
        return 0.0
    return paes_total(
        {
            "math": applicant.paes_math,
            "language": applicant.paes_language,
            "science": applicant.paes_science,
            "history": applicant.paes_history,
        }
    )


def check_benefit_eligibility(
    benefit: BenefitRecord,
    applicant: ApplicantProfile,
    decile: int,
) -> BenefitEligibility:
    if not benefit.active:
        return BenefitEligibility(benefit, False, "Beneficio no vigente")

    max_decile = MAX_DECILE_BY_TYPE.get(benefit.benefit_type)
    if max_decile is not None and decile > max_decile:
        return BenefitEligibility(
            benefit, False, f"Decil socioeconómico muy alto para {TYPE_LABEL[benefit.benefit_type]}"
        )

    requirements = benefit.requirements
    reason = "Cumple criterios de elegibilidad"
    eligible = True

    nem_min = requirements.get("nemMinimo")
    if nem_min and applicant.nem and applicant.nem < float(nem_min):
        eligible, reason = False, f"NEM insuficiente (requerido: {nem_min})"

    ranking_min = requirements.get("rankingMinimo")
    if ranking_min and applicant.ranking and applicant.ranking < float(ranking_min):
        eligible, reason = False, f"Ranking insuficiente (requerido: {ranking_min})"

    paes_min = requirements.get("paesMinimo")
    if paes_min and applicant.took_paes and _applicant_paes_total(applicant) < float(paes_min):
        eligible, reason = False, f"PAES insuficiente (requerido: {paes_min})"

    school_type = requirements.get("tipoColegio")
    if school_type == "municipal" and applicant.school and "municipal" not in applicant.school.lower():
        eligible, reason = False, "Tipo de colegio no elegible"

    return BenefitEligibility(benefit, eligible, reason)


def _applies_to(concept: Optional[str]) -> str:
    if concept == CONCEPT_TUITION:
        return "arancel"
    if concept == CONCEPT_ENROLLMENT:
        return "matricula"
    return "total"


def benefit_discount(benefit: BenefitRecord, base: float, decile: int) -> BenefitDiscount:
    pct_amount = 0.0
    if benefit.max_percentage and benefit.max_percentage > 0:
        pct_amount = percentage_discount(base, benefit.max_percentage)
    fixed_amount = 0.0
    if benefit.max_amount and benefit.max_amount > 0:
        fixed_amount = fixed_discount(base, benefit.max_amount)

    amount = combined_discount(pct_amount, fixed_amount) * decile_scaling_factor(decile)
    return BenefitDiscount(
        benefit=benefit,
        applies_to=_applies_to(benefit.concept),
        amount=amount,
        reason=f"Aplicado por {benefit.benefit_type} - Decil {decile}",
    )


def calculate_final_tuition(
    base_tuition: float,
    base_enrollment: float,
    benefits: Iterable[BenefitRecord],
    decile: int,
) -> TuitionBreakdown:
    """Every benefit is discounted off `base_tuition`; enrollment benefits reduce the fee only."""
    discounts = tuple(benefit_discount(benefit, base_tuition, decile) for benefit in benefits)
    tuition_total = sum(item.amount for item in discounts if item.applies_to in {"arancel", "total"})
    enrollment_total = sum(item.amount for item in discounts if item.applies_to == "matricula")

    return TuitionBreakdown(
        base_tuition=float(base_tuition),
        base_enrollment=float(base_enrollment),
        discounts=discounts,
        total_discounts=tuition_total + enrollment_total,
        final_tuition=max(0.0, base_tuition - tuition_total),
        final_enrollment=max(0.0, base_enrollment - enrollment_total),
    )


def effective_discount(base: float, benefits: Iterable[BenefitRecord], decile: int) -> float:
    """Summed benefit discount, capped at the base and at 20%..70% of it depending on decile."""
    total = sum(benefit_discount(benefit, base, decile).amount for benefit in benefits)
    capped = min(total, base)
    max_pct = min(100.0, 20.0 + (10 - decile) * 5.0)
    return min(capped, base * max_pct / 100.0)


def eligibility_score(benefit: BenefitRecord, applicant: ApplicantProfile, decile: int) -> int:
    score = TYPE_BASE_SCORE.get(benefit.benefit_type, 0)
    score += (11 - decile) * 2

    if applicant.nem and applicant.nem >= 6.0:
        score += 5
    elif applicant.nem and applicant.nem >= 5.0:
        score += 3

    if applicant.ranking and applicant.ranking >= 800:
        score += 5
    elif applicant.ranking and applicant.ranking >= 600:
        score += 3

    if applicant.took_paes:
        total = _applicant_paes_total(applicant)
        if total >= 800:
            score += 5
        elif total >= 600:
            score += 3

    if applicant.school and "municipal" in applicant.school.lower():
        score += 3

    return min(score, 100)


def order_benefits(benefits: Iterable[BenefitRecord]) -> list[BenefitRecord]:
    return sorted(
        benefits,
        key=lambda benefit: (
            benefit.priority if benefit.priority else UNSET_PRIORITY,
            TYPE_ORDER.get(benefit.benefit_type, len(TYPE_ORDER) + 1),
        ),
    )


def score_benefits(
    benefits_df: pd.DataFrame,
    applicant: ApplicantProfile,
    *,
    base_tuition: float = DEFAULT_BASE_TUITION,
    decile: int | None = None,
) -> pd.DataFrame:
    """One row per active benefit with eligibility, score and scaled discount."""
    active_decile = decile if decile is not None else applicant.effective_decile()
    benefits = [BenefitRecord.from_mapping(record) for record in benefits_df.to_dict(orient="records")]

    rows: list[dict[str, Any]] = []
    for benefit in order_benefits(benefit for benefit in benefits if benefit.active):
        check = check_benefit_eligibility(benefit, applicant, active_decile)
        discount = benefit_discount(benefit, base_tuition, active_decile)
        rows.append(
            {
                "code": benefit.code,
                "description": benefit.description,
                "benefit_type": benefit.benefit_type,
                "priority": benefit.priority,
                "eligible": check.eligible,
                "reason": check.reason,
                "eligibility_score": eligibility_score(benefit, applicant, active_decile),
                "applies_to": discount.applies_to,
                "discount": discount.amount if check.eligible else 0.0,
            }
        )

    columns = [
        "code",
        "description",
        "benefit_type",
        "priority",
        "eligible",
        "reason",
        "eligibility_score",
        "applies_to",
        "discount",
    ]
    scored_df = pd.DataFrame(rows, columns=columns)
    logger.debug("Scored %d benefits for decile %d.", len(scored_df), active_decile)
    return scored_df
