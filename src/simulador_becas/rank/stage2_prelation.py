from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Iterable

from simulador_becas.normalize.schema import (
    AppliedOffer,
    EligibilityResult,
    SkipCause,
    SkippedOffer,
    StackedDiscountResult,
)
from simulador_becas.rank.discounts import combined_discount, fixed_discount, percentage_discount
from simulador_becas.rank.policy import EngineConfig, PercentageBasis, StackingPolicy

logger = logging.getLogger(__name__)


def _code_key(code: str) -> str:
    return str(code).strip().upper()


def _warn_catalog_anomalies(results: list[EligibilityResult]) -> None:
    known_codes = {_code_key(result.offer.code) for result in results}
    for result in results:
        for code in result.offer.incompatible_codes:
            if _code_key(code) not in known_codes:
                logger.warning(
                    "Offer %s lists unknown incompatible code %s; ignoring it.",
                    result.offer.code,
                    code,
                )

    priorities = Counter(result.offer.priority for result in results if result.eligible)
    for priority, count in sorted(priorities.items()):
        if count > 1:
            logger.warning(
                "%d eligible offers share priority %d; tie broken by category then catalog order.",
                count,
                priority,
            )


def sort_for_prelation(
    results: Iterable[EligibilityResult],
    config: EngineConfig | None = None,
) -> list[EligibilityResult]:
    """Eligible results by ascending priority, then category rank; catalog order otherwise."""
    active_config = config or EngineConfig.baseline()
    eligible = [result for result in results if result.eligible]
    return sorted(
        eligible,
        key=lambda result: (result.offer.priority, active_config.category_rank(result.offer.category)),
    )


def offer_discount(
    result: EligibilityResult,
    balance: float,
    base_tuition: float,
    basis: PercentageBasis = PercentageBasis.RUNNING_BALANCE,
) -> float:
    """Monetary discount for one offer, never more than the remaining balance."""
    if balance <= 0:
        return 0.0
    percentage_base = balance if basis == PercentageBasis.RUNNING_BALANCE else base_tuition
    pct_amount = percentage_discount(percentage_base, result.percentage) if result.percentage > 0 else 0.0
    fixed_amount = fixed_discount(balance, result.fixed_amount) if result.fixed_amount > 0 else 0.0
    return min(combined_discount(pct_amount, fixed_amount), balance)


def resolve(
    results: Iterable[EligibilityResult],
    base_tuition: float,
    *,
    config: EngineConfig | None = None,
) -> StackedDiscountResult:
    active_config = config or EngineConfig.baseline()
    base = float(base_tuition)
    if not math.isfinite(base) or base < 0:
        raise ValueError(f"Base tuition must be a non-negative number (received {base_tuition!r}).")

    all_results = list(results)
    _warn_catalog_anomalies(all_results)
    ordered = sort_for_prelation(all_results, active_config)

    balance = base
    blocked: set[str] = set()
    applied: list[AppliedOffer] = []
    applied_codes: set[str] = set()
    skipped: list[SkippedOffer] = []
    closed_by_exclusive = False

    for result in ordered:
        offer = result.offer
        code = _code_key(offer.code)

        if active_config.stacking_policy == StackingPolicy.SINGLE_BEST and applied:
            skipped.append(SkippedOffer(offer.code, SkipCause.SINGLE_BEST_POLICY))
            continue
        if closed_by_exclusive:
            skipped.append(SkippedOffer(offer.code, SkipCause.NOT_COMBINABLE))
            continue
        if code in blocked:
            skipped.append(SkippedOffer(offer.code, SkipCause.BLOCKED))
            continue
        if any(_code_key(other) in applied_codes for other in offer.incompatible_codes):
            skipped.append(SkippedOffer(offer.code, SkipCause.INCOMPATIBLE_WITH_APPLIED))
            continue
        if not offer.combinable and applied:
            skipped.append(SkippedOffer(offer.code, SkipCause.NOT_COMBINABLE))
            continue

        discount = offer_discount(result, balance, base, active_config.percentage_basis)
        balance = max(0.0, balance - discount)
        applied.append(
            AppliedOffer(
                offer=offer,
                discount=discount,
                balance_after=balance,
                percentage=result.percentage,
                fixed_amount=result.fixed_amount,
            )
        )
        applied_codes.add(code)
        blocked.update(_code_key(other) for other in offer.incompatible_codes)
        if not offer.combinable:
            closed_by_exclusive = True

    total_discount = sum(item.discount for item in applied)
    logger.debug(
        "Applied %d offers (%d skipped): base=%.0f final=%.0f.",
        len(applied),
        len(skipped),
        base,
        balance,
    )
    return StackedDiscountResult(
        base_tuition=base,
        applied=tuple(applied),
        skipped=tuple(skipped),
        total_discount=total_discount,
        final_tuition=balance,
        total_savings=total_discount,
    )
