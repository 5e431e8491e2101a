from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional

from simulador_becas.rank.discounts import calculate_decile


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    MIXED = "mixed"


class OfferCategory(str, Enum):
    BECA = "BECA"
    FINANCIAMIENTO = "FINANCIAMIENTO"
    FINANCIERO = "FINANCIERO"


class SkipCause(str, Enum):
    BLOCKED = "BLOCKED"
    INCOMPATIBLE_WITH_APPLIED = "INCOMPATIBLE_WITH_APPLIED"
    NOT_COMBINABLE = "NOT_COMBINABLE"
    SINGLE_BEST_POLICY = "SINGLE_BEST_POLICY"


@dataclass(frozen=True, slots=True)
class MixedDiscountRule:
    """One `descuento_mixto` rule: every `when` key must match the career context."""

    when: tuple[tuple[str, tuple[str, ...]], ...]
    percentage: float

    def conditions(self) -> dict[str, tuple[str, ...]]:
        return dict(self.when)


@dataclass(frozen=True, slots=True)
class ScholarshipOffer:
    """Canonical scholarship definition evaluated by the engine."""

    code: str
    name: str
    priority: int
    discount_type: DiscountType
    effective_from: date
    category: Optional[OfferCategory] = None
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None
    mixed_rules: tuple[MixedDiscountRule, ...] = ()
    mixed_default: Optional[float] = None
    min_nem: Optional[float] = None
    min_paes: Optional[float] = None
    min_ranking: Optional[float] = None
    requires_state_scholarship: Optional[bool] = None
    requires_region: bool = False
    excluded_region: Optional[str] = None
    required_region: Optional[str] = None
    required_gender: Optional[str] = None
    required_nationality: Optional[str] = None
    requires_foreign: Optional[bool] = None
    requires_chile_residency: Optional[bool] = None
    eligible_careers: tuple[str, ...] = ()
    excluded_program_types: tuple[str, ...] = ()
    modalities: tuple[str, ...] = ()
    max_years_since_graduation: Optional[int] = None
    max_years_since_paes: Optional[int] = None
    min_age: Optional[int] = None
    effective_until: Optional[date] = None
    total_slots: Optional[int] = None
    used_slots: int = 0
    required_institution: Optional[str] = None
    max_decile: Optional[int] = None
    combinable: bool = True
    incompatible_codes: tuple[str, ...] = ()
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ApplicantProfile:
    """Snapshot of one simulation's form answers. Identity fields are never read."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    nem: Optional[float] = None
    ranking: Optional[float] = None
    took_paes: bool = False
    paes_math: Optional[float] = None
    paes_language: Optional[float] = None
    paes_science: Optional[float] = None
    paes_history: Optional[float] = None
    graduation_year: Optional[int] = None
    school: Optional[str] = None
    monthly_income: Optional[float] = None
    household_size: Optional[int] = None
    decile: Optional[int] = None
    region: Optional[str] = None
    region_id: Optional[int] = None
    uses_state_scholarships: bool = False
    gender: Optional[str] = None
    nationality: Optional[str] = None
    is_foreign: bool = False
    resides_in_chile: bool = True
    birth_year: Optional[int] = None
    career: Optional[str] = None
    career_id: Optional[int] = None
    program_type: Optional[str] = None
    modality: Optional[str] = None
    institution_id: Optional[str] = None

    def paes_score(self) -> float:
        scores = [score for score in (self.paes_math, self.paes_language) if score is not None]
        return float(max(scores)) if scores else 0.0

    def effective_decile(self) -> int:
        if self.decile is not None:
            return int(self.decile)
        return calculate_decile(self.monthly_income, self.household_size)


@dataclass(frozen=True, slots=True)
class CareerRecord:
    career_id: int
    name: str
    modality: Optional[str] = None
    level: Optional[str] = None
    tuition: float = 0.0
    enrollment_fee: float = 0.0
    duration_semesters: Optional[int] = None
    active: bool = True

    def context(self) -> dict[str, str]:
        return {
            "nivel_academico": self.level or "",
            "modalidad_programa": self.modality or "",
        }

    def duration_years(self) -> Optional[float]:
        if not self.duration_semesters:
            return None
        return self.duration_semesters / 2.0


@dataclass(frozen=True, slots=True)
class FailureReason:
    code: str
    message: str


@dataclass(frozen=True, slots=True)
class EligibilityResult:
    offer: ScholarshipOffer
    eligible: bool
    reason: str = ""
    failures: tuple[FailureReason, ...] = ()
    percentage: float = 0.0
    fixed_amount: float = 0.0

    def reason_codes(self) -> list[str]:
        return [failure.code for failure in self.failures]


@dataclass(frozen=True, slots=True)
class AppliedOffer:
    offer: ScholarshipOffer
    discount: float
    balance_after: float
    percentage: float = 0.0
    fixed_amount: float = 0.0


@dataclass(frozen=True, slots=True)
class SkippedOffer:
    code: str
    cause: SkipCause


@dataclass(frozen=True, slots=True)
class StackedDiscountResult:
    base_tuition: float
    applied: tuple[AppliedOffer, ...] = ()
    skipped: tuple[SkippedOffer, ...] = ()
    total_discount: float = 0.0
    final_tuition: float = 0.0
    total_savings: float = 0.0

    def applied_codes(self) -> list[str]:
        return [item.offer.code for item in self.applied]

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_tuition": self.base_tuition,
            "applied": [
                {
                    "code": item.offer.code,
                    "name": item.offer.name,
                    "priority": item.offer.priority,
                    "discount": item.discount,
                    "balance_after": item.balance_after,
                }
                for item in self.applied
            ],
            "skipped": [{"code": item.code, "cause": item.cause.value} for item in self.skipped],
            "total_discount": self.total_discount,
            "final_tuition": self.final_tuition,
            "total_savings": self.total_savings,
        }


@dataclass(frozen=True, slots=True)
class SimulationResult:
    base_tuition: float
    state_stage: StackedDiscountResult
    internal_stage: StackedDiscountResult
    eligibility: tuple[EligibilityResult, ...] = ()
    state_eligibility: tuple[EligibilityResult, ...] = ()
    program_years: float = 0.0

    @property
    def final_tuition(self) -> float:
        return self.internal_stage.final_tuition

    @property
    def annual_savings(self) -> float:
        return max(0.0, self.base_tuition - self.final_tuition)

    @property
    def program_savings(self) -> float:
        return self.annual_savings * self.program_years

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_tuition": self.base_tuition,
            "final_tuition": self.final_tuition,
            "annual_savings": self.annual_savings,
            "program_years": self.program_years,
            "program_savings": self.program_savings,
            "state_stage": self.state_stage.to_dict(),
            "internal_stage": self.internal_stage.to_dict(),
            "ineligible": [
                {"code": result.offer.code, "reason": result.reason, "reason_codes": result.reason_codes()}
                for result in self.eligibility
                if not result.eligible
            ],
        }
