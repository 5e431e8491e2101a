from __future__ import annotations

import pandas as pd
import pytest

from simulador_becas.normalize.careers import CareerLookup, career_from_record


def _lookup() -> CareerLookup:
    return CareerLookup.from_records(
        [
            {
                "id": 10,
                "nombre_carrera": "Ingeniería Informática Multimedia",
                "modalidad_programa": "Presencial",
                "nivel_global": "Pregrado",
                "arancel_carrera": 4_200_000,
                "duracion_en_semestres": 8,
                "vigencia": "SI",
            },
            {
                "id": 11,
                "nombre_carrera": "Psicología",
                "modalidad_programa": "Online",
                "arancel": 3_100_000,
                "vigencia": "NO",
            },
        ]
    )


def test_career_record_maps_carreras_columns() -> None:
    career = career_from_record(
        {
            "id": "5",
            "nombre_carrera": "Diseño",
            "modalidad_programa": " Vespertino ",
            "nivel_global": "Pregrado",
            "arancel_carrera": 3_600_000,
            "matricula_carrera": 160_000,
            "duracion_en_semestres": 9,
        }
    )

    assert career.career_id == 5
    assert career.modality == "Vespertino"
    assert career.enrollment_fee == 160_000.0
    assert career.duration_years() == pytest.approx(4.5)
    assert career.context() == {"nivel_academico": "Pregrado", "modalidad_programa": "Vespertino"}


def test_career_record_requires_id() -> None:
    with pytest.raises(ValueError, match="id"):
        career_from_record({"nombre_carrera": "Sin id"})


def test_get_filters_by_modality_with_accent_folding() -> None:
    lookup = _lookup()

    assert lookup.get(10).name == "Ingeniería Informática Multimedia"
    assert lookup.get(10, ["presencial"]) is not None
    assert lookup.get(10, ["Online"]) is None
    assert lookup.get(999) is None
    assert lookup.get(None) is None


def test_by_name_skips_inactive_careers() -> None:
    lookup = _lookup()

    assert lookup.by_name("ingenieria informatica multimedia").career_id == 10
    assert lookup.by_name("Psicología") is None
    assert lookup.get(11) is not None


def test_tuition_for_falls_back_to_name_then_zero() -> None:
    lookup = _lookup()

    assert lookup.tuition_for(10) == 4_200_000.0
    assert lookup.tuition_for(None, "Ingeniería Informática Multimedia") == 4_200_000.0
    assert lookup.tuition_for(42, "Desconocida") == 0.0


def test_from_frame_handles_missing_cells() -> None:
    df = pd.DataFrame(
        [
            {"id": 1, "nombre_carrera": "A", "modalidad_programa": "Online", "duracion_en_semestres": 8},
            {"id": 2, "nombre_carrera": "B", "modalidad_programa": None, "duracion_en_semestres": None},
        ]
    )

    lookup = CareerLookup.from_frame(df)

    assert len(lookup) == 2
    assert lookup.get(2).modality is None
    assert lookup.get(2).duration_years() is None
