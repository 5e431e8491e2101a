from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR / "src") not in sys.path:
    sys.path.insert(0, str(ROOT_DIR / "src"))

from simulador_becas.ingest.cache import write_raw_payload
from simulador_becas.ingest.http import PoliteHttpClient, supabase_headers
from simulador_becas.ingest.registry import register_sources
from simulador_becas.io.catalog_io import (
    find_prior_snapshot,
    write_catalog_snapshot,
    write_json_atomic,
)
from simulador_becas.normalize.catalog import CatalogValidationError, offer_from_record

logger = logging.getLogger("fetch_catalog")

OFFERS_TABLE = "becas_uniacc"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch the scholarship catalog tables and write a dated snapshot.")
    parser.add_argument("--supabase-url", type=str, default=os.environ.get("SUPABASE_URL"))
    parser.add_argument("--api-key", type=str, default=os.environ.get("SUPABASE_ANON_KEY"))
    parser.add_argument("--raw-dir", type=Path, default=ROOT_DIR / "data" / "raw")
    parser.add_argument("--processed-dir", type=Path, default=ROOT_DIR / "data" / "processed")
    parser.add_argument(
        "--date",
        type=str,
        default=None,
        help="Run date in YYYYMMDD format. Defaults to current UTC date.",
    )
    parser.add_argument("--requests-per-second", type=float, default=2.0)
    parser.add_argument("--request-timeout-seconds", type=float, default=20.0)
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail the run on the first invalid offer instead of dropping it.",
    )
    return parser.parse_args()


def _resolve_repo_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return ROOT_DIR / path


def _coerce_run_date(run_date: str | None) -> date:
    if run_date is None:
        return datetime.now(tz=UTC).date()
    return datetime.strptime(run_date, "%Y%m%d").date()


def _exception_summary(exc: Exception) -> dict[str, str]:
    return {"type": type(exc).__name__, "message": str(exc)}


def _validate_offer_rows(
    rows: list[dict[str, Any]],
    *,
    strict: bool,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    valid: list[dict[str, Any]] = []
    rejected: list[dict[str, Any]] = []
    for row in rows:
        try:
            offer_from_record(row)
        except CatalogValidationError as exc:
            if strict:
                raise
            rejected.append({"code": exc.offer_code, "field": exc.field, "message": str(exc)})
            logger.warning("Dropping invalid offer: %s", exc)
            continue
        valid.append(row)
    return valid, rejected


def _build_guardrail_warnings(
    *,
    prior_count: int | None,
    current_count: int,
    rejected_count: int,
) -> list[str]:
    warnings: list[str] = []
    if prior_count and prior_count > 0 and current_count < (prior_count * 0.5):
        warnings.append(
            f"Offer count dropped by more than 50% vs prior snapshot ({current_count} vs {prior_count})."
        )
    total = current_count + rejected_count
    if total > 0:
        rejected_ratio = rejected_count / total
        if rejected_ratio > 0.05:
            warnings.append(
                f"More than 5% of offers failed validation ({rejected_count}/{total}, {rejected_ratio:.1%})."
            )
    return warnings


def run_fetch(
    *,
    supabase_url: str,
    api_key: str,
    date: date | None = None,
    raw_dir: Path | None = None,
    processed_dir: Path | None = None,
    requests_per_second: float = 2.0,
    request_timeout_seconds: float = 20.0,
    strict: bool = False,
    report_dir: Path | None = None,
    http_client: Any | None = None,
) -> dict[str, Any]:
    started_at = datetime.now(tz=UTC)
    resolved_raw_dir = _resolve_repo_path(raw_dir or (ROOT_DIR / "data" / "raw"))
    resolved_processed_dir = _resolve_repo_path(processed_dir or (ROOT_DIR / "data" / "processed"))
    resolved_report_dir = _resolve_repo_path(report_dir or (ROOT_DIR / "reports" / "fetch_runs"))
    effective_run_date = date or datetime.now(tz=UTC).date()
    run_stamp = effective_run_date.strftime("%Y%m%d")
    report_path = resolved_report_dir / f"fetch_{started_at.strftime('%Y%m%dT%H%M%SZ')}.json"

    table_rows: dict[str, list[dict[str, Any]]] = {}
    table_attempts: list[dict[str, Any]] = []
    table_paths: dict[str, str] = {}
    rejected: list[dict[str, Any]] = []
    guardrail_warnings: list[str] = []
    prior_count: int | None = None
    snapshot_path: Path | None = None
    changes_path: Path | None = None
    delta: dict[str, Any] = {"added": [], "removed": [], "changed": []}
    snapshot_skip_reason: str | None = None
    run_exception: dict[str, str] | None = None

    try:
        sources = register_sources(supabase_url)
        owns_client = http_client is None
        client = http_client or PoliteHttpClient(
            requests_per_second=requests_per_second,
            timeout_seconds=request_timeout_seconds,
            default_headers=supabase_headers(api_key),
        )
        try:
            for source in sources:
                table_report: dict[str, Any] = {"table": source.name, "status": "failed", "rows": 0}
                try:
                    raw_response = source.fetch(client)
                    raw_path = write_raw_payload(
                        table=source.name,
                        payload=raw_response.content,
                        raw_root=resolved_raw_dir,
                        extension=raw_response.extension,
                        timestamp=raw_response.fetched_at,
                    )
                    rows = source.parse(raw_response.content)
                    table_rows[source.name] = rows
                    table_report["status"] = "succeeded"
                    table_report["rows"] = len(rows)
                    table_report["cache_path"] = str(raw_path.resolve())
                    logger.info("Table=%s cached=%s rows=%d", source.name, raw_path, len(rows))
                except Exception as exc:
                    table_report["exception_summary"] = _exception_summary(exc)
                    logger.exception("Table %s failed. Continuing with remaining tables.", source.name)
                table_attempts.append(table_report)
        finally:
            if owns_client:
                client.close()

        for table, rows in table_rows.items():
            if table == OFFERS_TABLE:
                continue
            output_path = resolved_processed_dir / f"{table}_{run_stamp}.json"
            write_json_atomic({"table": table, "rows": rows}, output_path)
            table_paths[table] = str(output_path.resolve())

        valid_rows, rejected = _validate_offer_rows(table_rows.get(OFFERS_TABLE, []), strict=strict)

        prior_snapshot_path = find_prior_snapshot(resolved_processed_dir, effective_run_date)
        if prior_snapshot_path is not None:
            try:
                prior_count = len(pd.read_parquet(prior_snapshot_path))
            except Exception:
                logger.exception("Failed to read prior snapshot at %s", prior_snapshot_path)

        guardrail_warnings = _build_guardrail_warnings(
            prior_count=prior_count,
            current_count=len(valid_rows),
            rejected_count=len(rejected),
        )
        for warning in guardrail_warnings:
            logger.warning("Guardrail: %s", warning)

        if valid_rows:
            snapshot_path, changes_path, delta = write_catalog_snapshot(
                pd.DataFrame(valid_rows),
                processed_dir=resolved_processed_dir,
                run_date=effective_run_date,
            )
        else:
            snapshot_skip_reason = "No valid offers available; snapshot and delta were skipped."
            logger.warning(snapshot_skip_reason)
    except Exception as exc:
        run_exception = _exception_summary(exc)
        logger.exception("Catalog fetch failed after partial progress.")
        snapshot_skip_reason = snapshot_skip_reason or "Catalog fetch failed before the snapshot was written."
    finally:
        finished_at = datetime.now(tz=UTC)
        succeeded = [entry["table"] for entry in table_attempts if entry["status"] == "succeeded"]
        failed = [entry["table"] for entry in table_attempts if entry["status"] == "failed"]

        if run_exception is not None or snapshot_path is None:
            status = "failed"
        elif failed or rejected:
            status = "partial"
        else:
            status = "success"

        report_payload = {
            "status": status,
            "run_started_at": started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "run_finished_at": finished_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration_seconds": round((finished_at - started_at).total_seconds(), 3),
            "run_date": effective_run_date.isoformat(),
            "config": {
                "supabase_url": supabase_url,
                "requests_per_second": requests_per_second,
                "request_timeout_seconds": request_timeout_seconds,
                "strict": strict,
            },
            "tables": {
                "succeeded": succeeded,
                "failed": failed,
                "details": table_attempts,
            },
            "offers": {
                "fetched_total": len(table_rows.get(OFFERS_TABLE, [])),
                "rejected_total": len(rejected),
                "rejected": rejected,
                "prior_snapshot_total": prior_count,
            },
            "artifact_paths": {
                "snapshot": str(snapshot_path.resolve()) if snapshot_path else None,
                "delta": str(changes_path.resolve()) if changes_path else None,
                "report": str(report_path.resolve()),
                "tables": table_paths,
            },
            "artifact_notes": {"snapshot_skip_reason": snapshot_skip_reason},
            "guardrail_warnings": guardrail_warnings,
            "delta_counts": {
                "added": len(delta["added"]),
                "removed": len(delta["removed"]),
                "changed": len(delta["changed"]),
            },
            "exception_summary": run_exception,
        }
        write_json_atomic(report_payload, report_path)
    return report_payload


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not args.supabase_url or not args.api_key:
        raise SystemExit("Set SUPABASE_URL and SUPABASE_ANON_KEY (or pass --supabase-url / --api-key).")

    report = run_fetch(
        supabase_url=args.supabase_url,
        api_key=args.api_key,
        date=_coerce_run_date(args.date),
        raw_dir=args.raw_dir,
        processed_dir=args.processed_dir,
        requests_per_second=args.requests_per_second,
        request_timeout_seconds=args.request_timeout_seconds,
        strict=args.strict,
    )

    print(f"Run status: {report['status']}")
    print(f"Wrote snapshot: {report['artifact_paths']['snapshot']}")
    print(f"Wrote changes: {report['artifact_paths']['delta']}")
    print(f"Wrote fetch report: {report['artifact_paths']['report']}")
    print(
        "Delta counts: "
        f"added={report['delta_counts']['added']}, "
        f"removed={report['delta_counts']['removed']}, "
        f"changed={report['delta_counts']['changed']}"
    )
    return 0 if report["status"] != "failed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
