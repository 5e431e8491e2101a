from __future__ import annotations

import json
import re
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import numpy as np
import pandas as pd

from simulador_becas.normalize.catalog import load_offers_frame
from simulador_becas.normalize.schema import ScholarshipOffer

SNAPSHOT_PREFIX = "becas_snapshot_"
CHANGES_PREFIX = "changes_"
SNAPSHOT_PATTERN = re.compile(r"^becas_snapshot_(\d{8})\.parquet$")

TRACKED_DIFF_FIELDS = ("priority", "discount", "validity", "incompatible_codes")

# Canonical name first, `becas_uniacc` column second.
_FIELD_ALIASES: dict[str, tuple[str, str]] = {
    "code": ("code", "codigo_beca"),
    "priority": ("priority", "prioridad"),
    "discount_type": ("discount_type", "tipo_descuento"),
    "percentage": ("percentage", "descuento_porcentaje"),
    "fixed_amount": ("fixed_amount", "descuento_monto_fijo"),
    "mixed_discount": ("mixed_discount", "descuento_mixto"),
    "effective_from": ("effective_from", "vigencia_desde"),
    "effective_until": ("effective_until", "vigencia_hasta"),
    "incompatible_codes": ("incompatible_codes", "becas_incompatibles"),
}


def _coerce_output_date(run_date: date | str | None) -> date:
    if run_date is None:
        return datetime.now(tz=UTC).date()
    if isinstance(run_date, date):
        return run_date
    return datetime.strptime(run_date, "%Y%m%d").date()


def _snapshot_filename(run_date: date) -> str:
    return f"{SNAPSHOT_PREFIX}{run_date.strftime('%Y%m%d')}.parquet"


def _changes_filename(run_date: date) -> str:
    return f"{CHANGES_PREFIX}{run_date.strftime('%Y%m%d')}.json"


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, np.ndarray):
        return [_jsonable(item) for item in value.tolist()]
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            return value.tz_convert("UTC").isoformat()
        return value.isoformat()
    if value is pd.NaT:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _field(record: dict[str, Any], name: str) -> Any:
    for key in _FIELD_ALIASES[name]:
        if key in record:
            return _jsonable(record.get(key))
    return None


def _tracked_value(record: dict[str, Any], field: str) -> Any:
    if field == "discount":
        return {
            "discount_type": _field(record, "discount_type"),
            "percentage": _field(record, "percentage"),
            "fixed_amount": _field(record, "fixed_amount"),
            "mixed_discount": _field(record, "mixed_discount"),
        }
    if field == "validity":
        return {
            "effective_from": _field(record, "effective_from"),
            "effective_until": _field(record, "effective_until"),
        }
    if field == "incompatible_codes":
        return sorted(str(code) for code in (_field(record, "incompatible_codes") or []))
    return _field(record, field)


def _code_column(df: pd.DataFrame) -> str:
    for column in _FIELD_ALIASES["code"]:
        if column in df.columns:
            return column
    raise ValueError("Catalog frame needs a 'code' or 'codigo_beca' column.")


def load_catalog_df(path: Path) -> pd.DataFrame:
    """Read a table exported as a JSON list (or {"becas"|"offers"|"rows": [...]}) or as parquet."""
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = next((payload[key] for key in ("becas", "offers", "rows") if key in payload), None)
        if not isinstance(payload, list):
            raise ValueError(f"Catalog JSON at {path} must be a list of rows.")
        return pd.DataFrame(payload)
    raise ValueError(f"Unsupported catalog format '{suffix}' (expected .json or .parquet).")


def load_catalog(path: Path) -> list[ScholarshipOffer]:
    return load_offers_frame(load_catalog_df(path))


def load_json(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"JSON file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def list_snapshot_files(processed_dir: Path) -> list[Path]:
    snapshots: list[tuple[datetime, Path]] = []
    for candidate in processed_dir.glob(f"{SNAPSHOT_PREFIX}*.parquet"):
        match = SNAPSHOT_PATTERN.match(candidate.name)
        if not match:
            continue
        snapshots.append((datetime.strptime(match.group(1), "%Y%m%d"), candidate))

    snapshots.sort(key=lambda item: item[0])
    return [item[1] for item in snapshots]


def get_latest_snapshot_path(processed_dir: Path) -> Path | None:
    snapshots = list_snapshot_files(processed_dir)
    return snapshots[-1] if snapshots else None


def find_prior_snapshot(processed_dir: Path, target_date: date) -> Path | None:
    target_name = _snapshot_filename(target_date)
    candidates = [path for path in list_snapshot_files(processed_dir) if path.name != target_name]
    return candidates[-1] if candidates else None


def prepare_catalog_snapshot_df(rows: pd.DataFrame) -> pd.DataFrame:
    """Sort by code and store nested JSON columns as text so parquet keeps a stable schema."""
    snapshot_df = rows.copy()
    for column in snapshot_df.columns:
        if snapshot_df[column].map(lambda value: isinstance(value, dict)).any():
            snapshot_df[column] = snapshot_df[column].map(
                lambda value: json.dumps(value, sort_keys=True) if isinstance(value, dict) else value
            )
    code_column = _code_column(snapshot_df)
    return snapshot_df.sort_values(by=[code_column], kind="mergesort").reset_index(drop=True)


def write_parquet_atomic(df: pd.DataFrame, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.parent / f"{output_path.name}.{uuid4().hex}.tmp"
    try:
        df.to_parquet(temp_path, index=False, engine="pyarrow")
        temp_path.replace(output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def write_json_atomic(payload: dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.parent / f"{output_path.name}.{uuid4().hex}.tmp"
    try:
        temp_path.write_text(
            json.dumps(_jsonable(payload), indent=2, sort_keys=True, ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def _records_by_code(df: pd.DataFrame) -> dict[str, dict[str, Any]]:
    if df.empty:
        return {}
    code_column = _code_column(df)
    keyed = df.set_index(code_column, drop=False).to_dict(orient="index")
    return {str(key): value for key, value in keyed.items()}


def build_catalog_delta(current_df: pd.DataFrame, prior_df: pd.DataFrame | None) -> dict[str, Any]:
    current_records = _records_by_code(current_df)
    prior_records = _records_by_code(prior_df) if prior_df is not None else {}

    current_codes = set(current_records)
    prior_codes = set(prior_records)

    added = [_jsonable(current_records[code]) for code in sorted(current_codes - prior_codes)]
    removed = [_jsonable(prior_records[code]) for code in sorted(prior_codes - current_codes)]

    changed: list[dict[str, Any]] = []
    for code in sorted(current_codes & prior_codes):
        old_record = prior_records[code]
        new_record = current_records[code]
        fields_changed: dict[str, Any] = {}
        for field in TRACKED_DIFF_FIELDS:
            old_value = _tracked_value(old_record, field)
            new_value = _tracked_value(new_record, field)
            if old_value != new_value:
                fields_changed[field] = {"old": old_value, "new": new_value}
        if fields_changed:
            changed.append({"code": code, "fields_changed": fields_changed})

    return {"added": added, "removed": removed, "changed": changed}


def write_catalog_snapshot(
    rows: pd.DataFrame,
    *,
    processed_dir: Path,
    run_date: date | str | None = None,
) -> tuple[Path, Path, dict[str, Any]]:
    snapshot_date = _coerce_output_date(run_date)
    snapshot_df = prepare_catalog_snapshot_df(rows)

    processed_dir.mkdir(parents=True, exist_ok=True)
    prior_snapshot_path = find_prior_snapshot(processed_dir, snapshot_date)
    prior_df = pd.read_parquet(prior_snapshot_path) if prior_snapshot_path else None

    snapshot_path = processed_dir / _snapshot_filename(snapshot_date)
    changes_path = processed_dir / _changes_filename(snapshot_date)

    delta = build_catalog_delta(snapshot_df, prior_df)
    write_parquet_atomic(snapshot_df, snapshot_path)
    write_json_atomic(delta, changes_path)
    return snapshot_path, changes_path, delta
