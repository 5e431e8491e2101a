from __future__ import annotations

import logging
from datetime import date

from simulador_becas.eval.catalog_quality import audit_catalog
from simulador_becas.eval.golden_applicants import EVAL_TODAY, reference_catalog
from simulador_becas.normalize.schema import DiscountType, ScholarshipOffer


def _offer(code: str, priority: int, **overrides) -> ScholarshipOffer:  # noqa: ANN003
    values = {
        "code": code,
        "name": code.title(),
        "priority": priority,
        "discount_type": DiscountType.PERCENTAGE,
        "effective_from": date(2025, 1, 1),
        "percentage": 10.0,
    }
    values.update(overrides)
    return ScholarshipOffer(**values)


def test_reference_catalog_only_flags_exhausted_capacity() -> None:
    offers, _, _ = reference_catalog()

    audit = audit_catalog(offers, today=EVAL_TODAY)

    assert audit.offer_count == 8
    assert audit.exhausted_capacity == ["CUPOS_AGOTADOS"]
    assert audit.duplicate_priorities == {}
    assert audit.one_way_incompatibilities == []
    assert not audit.is_clean


def test_audit_reports_each_anomaly(caplog) -> None:  # noqa: ANN001
    offers = [
        _offer("A", 1, incompatible_codes=("B", "GHOST")),
        _offer("B", 1),
        _offer("OLD", 2, effective_until=date(2025, 6, 30)),
        _offer("NEW", 3, effective_from=date(2027, 1, 1)),
    ]

    with caplog.at_level(logging.WARNING, logger="simulador_becas.eval.catalog_quality"):
        audit = audit_catalog(offers, today=date(2026, 3, 1))

    assert audit.duplicate_priorities == {1: ["A", "B"]}
    assert audit.unknown_incompatible_codes == {"A": ["GHOST"]}
    assert audit.one_way_incompatibilities == [("A", "B")]
    assert audit.expired == ["OLD"]
    assert audit.not_yet_valid == ["NEW"]
    assert "Priority 1 shared by A, B." in caplog.text

    payload = audit.to_dict()
    assert payload["is_clean"] is False
    assert payload["duplicate_priorities"] == {"1": ["A", "B"]}
    assert len(payload["warnings"]) == 4


def test_clean_catalog() -> None:
    offers = [
        _offer("A", 1, incompatible_codes=("b",)),
        _offer("B", 2, incompatible_codes=("A",)),
    ]

    audit = audit_catalog(offers, today=date(2026, 3, 1))

    assert audit.is_clean
    assert audit.warnings() == []
