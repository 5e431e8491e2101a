from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from simulador_becas.normalize.schema import ScholarshipOffer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CatalogAudit:
    offer_count: int = 0
    duplicate_priorities: dict[int, list[str]] = field(default_factory=dict)
    unknown_incompatible_codes: dict[str, list[str]] = field(default_factory=dict)
    one_way_incompatibilities: list[tuple[str, str]] = field(default_factory=list)
    exhausted_capacity: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    not_yet_valid: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.duplicate_priorities
            or self.unknown_incompatible_codes
            or self.one_way_incompatibilities
            or self.exhausted_capacity
            or self.expired
        )

    def warnings(self) -> list[str]:
        messages: list[str] = []
        for priority, codes in sorted(self.duplicate_priorities.items()):
            messages.append(f"Priority {priority} shared by {', '.join(codes)}.")
        for code, unknown in sorted(self.unknown_incompatible_codes.items()):
            messages.append(f"{code} lists unknown incompatible codes: {', '.join(unknown)}.")
        for source, target in self.one_way_incompatibilities:
            messages.append(f"{source} excludes {target} but {target} does not exclude {source}.")
        if self.exhausted_capacity:
            messages.append(f"No slots left: {', '.join(self.exhausted_capacity)}.")
        if self.expired:
            messages.append(f"Expired: {', '.join(self.expired)}.")
        return messages

    def to_dict(self) -> dict[str, Any]:
        return {
            "offer_count": self.offer_count,
            "is_clean": self.is_clean,
            "duplicate_priorities": {str(key): value for key, value in sorted(self.duplicate_priorities.items())},
            "unknown_incompatible_codes": dict(sorted(self.unknown_incompatible_codes.items())),
            "one_way_incompatibilities": [list(pair) for pair in self.one_way_incompatibilities],
            "exhausted_capacity": self.exhausted_capacity,
            "expired": self.expired,
            "not_yet_valid": self.not_yet_valid,
            "warnings": self.warnings(),
        }


def audit_catalog(offers: Iterable[ScholarshipOffer], today: date | None = None) -> CatalogAudit:
    """Catalog anomalies that stacking tolerates but an editor should fix."""
    effective_today = today or date.today()
    catalog = list(offers)
    audit = CatalogAudit(offer_count=len(catalog))

    by_code = {offer.code.strip().upper(): offer for offer in catalog}
    by_priority: dict[int, list[str]] = defaultdict(list)
    for offer in catalog:
        by_priority[offer.priority].append(offer.code)
    audit.duplicate_priorities = {
        priority: sorted(codes) for priority, codes in by_priority.items() if len(codes) > 1
    }

    for offer in catalog:
        own_key = offer.code.strip().upper()
        unknown = [code for code in offer.incompatible_codes if code.strip().upper() not in by_code]
        if unknown:
            audit.unknown_incompatible_codes[offer.code] = unknown

        for code in offer.incompatible_codes:
            other = by_code.get(code.strip().upper())
            if other is None:
                continue
            other_keys = {item.strip().upper() for item in other.incompatible_codes}
            if own_key not in other_keys:
                audit.one_way_incompatibilities.append((offer.code, other.code))

        if offer.total_slots is not None and offer.used_slots >= offer.total_slots:
            audit.exhausted_capacity.append(offer.code)
        if offer.effective_until is not None and effective_today > offer.effective_until:
            audit.expired.append(offer.code)
        if effective_today < offer.effective_from:
            audit.not_yet_valid.append(offer.code)

    for message in audit.warnings():
        logger.warning("Catalog audit: %s", message)
    return audit
