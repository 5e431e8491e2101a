from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pandas as pd
import pytest

from simulador_becas.eval.golden_applicants import reference_catalog_rows
from simulador_becas.io.catalog_io import (
    build_catalog_delta,
    get_latest_snapshot_path,
    list_snapshot_files,
    load_catalog,
    load_catalog_df,
    write_catalog_snapshot,
)


def _rows() -> list[dict]:
    return [
        {
            "codigo_beca": "A",
            "nombre": "Beca A",
            "prioridad": 1,
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 10,
            "vigencia_desde": "2025-01-01",
            "becas_incompatibles": ["B"],
        },
        {
            "codigo_beca": "B",
            "nombre": "Beca B",
            "prioridad": 2,
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 20,
            "vigencia_desde": "2025-01-01",
            "becas_incompatibles": ["A"],
        },
    ]


def test_delta_tracks_added_removed_and_changed_fields() -> None:
    prior_df = pd.DataFrame(_rows())
    current_rows = _rows()
    current_rows[0]["prioridad"] = 5
    current_rows[0]["descuento_porcentaje"] = 15
    current_rows[1]["codigo_beca"] = "C"

    delta = build_catalog_delta(pd.DataFrame(current_rows), prior_df)

    assert [item["codigo_beca"] for item in delta["added"]] == ["C"]
    assert [item["codigo_beca"] for item in delta["removed"]] == ["B"]
    assert len(delta["changed"]) == 1
    changed = delta["changed"][0]
    assert changed["code"] == "A"
    assert set(changed["fields_changed"]) == {"priority", "discount"}
    assert changed["fields_changed"]["priority"] == {"old": 1, "new": 5}


def test_delta_ignores_incompatible_code_order() -> None:
    prior_rows = _rows()
    prior_rows[0]["becas_incompatibles"] = ["B", "Z"]
    current_rows = _rows()
    current_rows[0]["becas_incompatibles"] = ["Z", "B"]

    delta = build_catalog_delta(pd.DataFrame(current_rows), pd.DataFrame(prior_rows))

    assert delta == {"added": [], "removed": [], "changed": []}


def test_first_snapshot_marks_everything_added(tmp_path: Path) -> None:
    snapshot_path, changes_path, delta = write_catalog_snapshot(
        pd.DataFrame(_rows()),
        processed_dir=tmp_path,
        run_date=date(2026, 3, 1),
    )

    assert snapshot_path.name == "becas_snapshot_20260301.parquet"
    assert len(delta["added"]) == 2
    persisted = json.loads(changes_path.read_text(encoding="utf-8"))
    assert persisted["removed"] == []


def test_second_snapshot_diffs_against_prior_and_reloads(tmp_path: Path) -> None:
    write_catalog_snapshot(pd.DataFrame(_rows()), processed_dir=tmp_path, run_date="20260301")
    updated = _rows()
    updated[1]["vigencia_hasta"] = "2026-12-31"
    _, _, delta = write_catalog_snapshot(pd.DataFrame(updated), processed_dir=tmp_path, run_date="20260302")

    assert [item["code"] for item in delta["changed"]] == ["B"]
    assert set(delta["changed"][0]["fields_changed"]) == {"validity"}
    assert [path.name for path in list_snapshot_files(tmp_path)] == [
        "becas_snapshot_20260301.parquet",
        "becas_snapshot_20260302.parquet",
    ]

    latest = get_latest_snapshot_path(tmp_path)
    offers = load_catalog(latest)
    assert [offer.code for offer in offers] == ["A", "B"]
    assert offers[0].incompatible_codes == ("B",)
    assert offers[1].effective_until == date(2026, 12, 31)


def test_reference_catalog_survives_parquet_round_trip(tmp_path: Path) -> None:
    snapshot_path, _, _ = write_catalog_snapshot(
        pd.DataFrame(reference_catalog_rows()),
        processed_dir=tmp_path,
        run_date="20260301",
    )

    offers = {offer.code: offer for offer in load_catalog(snapshot_path)}

    assert offers["CONVENIO"].mixed_default == 10.0
    assert offers["CONVENIO"].combinable is False
    assert offers["REGIONAL"].fixed_amount == 300_000.0
    assert offers["CUPOS_AGOTADOS"].total_slots == 10


def test_load_catalog_df_formats(tmp_path: Path) -> None:
    wrapped = tmp_path / "becas.json"
    wrapped.write_text(json.dumps({"becas": _rows()}), encoding="utf-8")
    bare = tmp_path / "rows.json"
    bare.write_text(json.dumps(_rows()), encoding="utf-8")

    assert list(load_catalog_df(wrapped)["codigo_beca"]) == ["A", "B"]
    assert len(load_catalog_df(bare)) == 2

    with pytest.raises(FileNotFoundError):
        load_catalog_df(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"otra": 1}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_catalog_df(bad)
    csv_path = tmp_path / "becas.csv"
    csv_path.write_text("codigo_beca\nA\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported"):
        load_catalog_df(csv_path)
