from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from simulador_becas.eval.golden_applicants import (
    reference_career_rows,
    reference_catalog_rows,
    reference_state_rows,
)
from scripts.run_simulation import run_simulation

TODAY = date(2026, 3, 1)


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture()
def inputs(tmp_path: Path) -> dict[str, Path]:
    return {
        "catalog": _write(tmp_path / "becas.json", {"becas": reference_catalog_rows()}),
        "state": _write(tmp_path / "becas_estado.json", {"table": "becas_estado", "rows": reference_state_rows()}),
        "careers": _write(tmp_path / "carreras.json", reference_career_rows()),
        "applicant": _write(
            tmp_path / "applicant.json",
            {
                "nem": 5.8,
                "rendioPAES": True,
                "paes": {"matematica": 560, "lenguaje": 610},
                "añoEgreso": 2024,
                "decil": 4,
                "regionResidencia": "Valparaíso",
                "usaBecasEstado": True,
                "genero": "Femenino",
                "anio_nacimiento": 2006,
                "carrera": "Ingeniería Informática Multimedia",
                "carreraId": 101,
            },
        ),
    }


def test_run_simulation_from_files(inputs: dict[str, Path]) -> None:
    payload = run_simulation(
        applicant_path=inputs["applicant"],
        catalog_path=inputs["catalog"],
        state_catalog_path=inputs["state"],
        careers_path=inputs["careers"],
        today=TODAY,
    )

    simulation = payload["simulation"]
    assert simulation["base_tuition"] == 4_200_000.0
    assert simulation["final_tuition"] == pytest.approx(865_687.5)
    assert simulation["program_years"] == 4.0
    assert payload["config"]["stacking_policy"] == "stack_all_compatible"


def test_run_simulation_with_config_and_benefits(inputs: dict[str, Path], tmp_path: Path) -> None:
    config_path = _write(tmp_path / "engine.json", {"stacking_policy": "single_best"})
    benefits_path = _write(
        tmp_path / "beneficios.json",
        [
            {"codigo_beneficio": "B1", "tipo_beneficio": "BECA", "porcentaje_maximo": 10, "prioridad": 1},
            {"codigo_beneficio": "M1", "tipo_beneficio": "FINANCIERO", "monto_maximo": 50_000, "aplicacion_concepto": "M"},
        ],
    )

    payload = run_simulation(
        applicant_path=inputs["applicant"],
        catalog_path=inputs["catalog"],
        careers_path=inputs["careers"],
        base_tuition=3_000_000,
        config_path=config_path,
        benefits_path=benefits_path,
        today=TODAY,
    )

    assert [item["code"] for item in payload["simulation"]["internal_stage"]["applied"]] == ["MERITO"]
    assert payload["simulation"]["final_tuition"] == pytest.approx(2_550_000)
    benefits = payload["benefits"]
    assert benefits["decile"] == 4
    assert [row["code"] for row in benefits["scored"]] == ["B1", "M1"]
    # Decile 4 scales discounts by 0.85; enrollment comes from the career record.
    assert benefits["final_tuition"] == pytest.approx(3_000_000 - 300_000 * 0.85)
    assert benefits["final_enrollment"] == pytest.approx(180_000 - 50_000 * 0.85)


def test_run_simulation_rejects_non_object_applicant(inputs: dict[str, Path], tmp_path: Path) -> None:
    applicant_path = _write(tmp_path / "bad_applicant.json", [1, 2])

    with pytest.raises(ValueError, match="must be an object"):
        run_simulation(applicant_path=applicant_path, catalog_path=inputs["catalog"], today=TODAY)
