from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from simulador_becas.normalize.schema import CareerRecord
from simulador_becas.normalize.text import fold_list, fold_text

logger = logging.getLogger(__name__)

# `carreras` table columns -> CareerRecord fields.
CARRERAS_COLUMNS: dict[str, str] = {
    "id": "career_id",
    "nombre_carrera": "name",
    "modalidad_programa": "modality",
    "nivel_global": "level",
    "arancel_carrera": "tuition",
    "arancel": "tuition",
    "matricula_carrera": "enrollment_fee",
    "matricula": "enrollment_fee",
    "duracion_en_semestres": "duration_semesters",
}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return False


def career_from_record(record: Mapping[str, Any]) -> CareerRecord:
    values: dict[str, Any] = {}
    for key, raw in record.items():
        target = CARRERAS_COLUMNS.get(key, key)
        if target in values and _is_missing(raw):
            continue
        values[target] = raw

    if _is_missing(values.get("career_id")):
        raise ValueError("Career record is missing 'id'.")

    vigencia = values.get("vigencia")
    active = values.get("active")
    if active is None:
        active = True if vigencia is None else str(vigencia).strip().upper() == "SI"

    duration = values.get("duration_semesters")
    return CareerRecord(
        career_id=int(values["career_id"]),
        name=str(values.get("name") or ""),
        modality=None if _is_missing(values.get("modality")) else str(values["modality"]).strip(),
        level=None if _is_missing(values.get("level")) else str(values["level"]).strip(),
        tuition=float(values.get("tuition") or 0.0),
        enrollment_fee=float(values.get("enrollment_fee") or 0.0),
        duration_semesters=None if _is_missing(duration) else int(duration),
        active=bool(active),
    )


class CareerLookup:
    """In-memory view of the `carreras` catalog used for modality gating."""

    def __init__(self, careers: Iterable[CareerRecord]) -> None:
        self._by_id: dict[int, CareerRecord] = {}
        self._by_name: dict[str, CareerRecord] = {}
        for career in careers:
            self._by_id[career.career_id] = career
            folded = fold_text(career.name)
            if folded and career.active:
                self._by_name.setdefault(folded, career)

    def __len__(self) -> int:
        return len(self._by_id)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> CareerLookup:
        return cls(career_from_record(record) for record in records)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> CareerLookup:
        return cls.from_records(df.to_dict(orient="records"))

    def get(
        self,
        career_id: int | None,
        modalities: Sequence[str] | None = None,
    ) -> CareerRecord | None:
        """Career by id, or None when unknown or outside the acceptable modalities."""
        if career_id is None:
            return None
        career = self._by_id.get(int(career_id))
        if career is None:
            logger.debug("Career id %s not found in lookup.", career_id)
            return None
        acceptable = fold_list(list(modalities or []))
        if acceptable and fold_text(career.modality) not in acceptable:
            return None
        return career

    def by_name(self, name: str | None) -> CareerRecord | None:
        folded = fold_text(name)
        if not folded:
            return None
        return self._by_name.get(folded)

    def tuition_for(self, career_id: int | None, name: str | None = None) -> float:
        career = self.get(career_id) or self.by_name(name)
        return career.tuition if career else 0.0
