from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR / "src") not in sys.path:
    sys.path.insert(0, str(ROOT_DIR / "src"))

from simulador_becas.io.catalog_io import (
    get_latest_snapshot_path,
    load_catalog_df,
    load_json,
    write_json_atomic,
)
from simulador_becas.normalize.careers import CareerLookup
from simulador_becas.normalize.catalog import load_offers_frame, load_state_offers, profile_from_mapping
from simulador_becas.rank.benefits_scoring import (
    DEFAULT_ENROLLMENT_FEE,
    BenefitRecord,
    calculate_final_tuition,
    score_benefits,
)
from simulador_becas.rank.named_exceptions import NamedExceptionTable
from simulador_becas.rank.policy import load_engine_config
from simulador_becas.rank.simulation import simulate

logger = logging.getLogger("run_simulation")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate stacked scholarship discounts for one applicant.")
    parser.add_argument("--applicant", type=Path, required=True, help="Applicant profile JSON (canonical or wizard keys).")
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Offer catalog (.json or .parquet). Defaults to latest snapshot in --processed-dir.",
    )
    parser.add_argument("--processed-dir", type=Path, default=ROOT_DIR / "data" / "processed")
    parser.add_argument("--state-catalog", type=Path, default=None)
    parser.add_argument("--careers", type=Path, default=None)
    parser.add_argument("--base-tuition", type=float, default=None)
    parser.add_argument("--config", type=Path, default=None, help="Engine config JSON.")
    parser.add_argument("--exceptions", type=Path, default=None, help="Named exception table JSON.")
    parser.add_argument("--benefits", type=Path, default=None, help="Optional generic benefits table.")
    parser.add_argument("--today", type=str, default=None, help="Evaluation date YYYY-MM-DD.")
    parser.add_argument("--output", type=Path, default=None)
    return parser.parse_args()


def _resolve_catalog_path(catalog_path: Path | None, processed_dir: Path) -> Path:
    if catalog_path is not None:
        return catalog_path
    latest = get_latest_snapshot_path(processed_dir)
    if latest is None:
        raise FileNotFoundError(f"No catalog snapshot found in '{processed_dir}'. Pass --catalog.")
    return latest


def _coerce_today(value: str | None) -> date | None:
    if value is None:
        return None
    return datetime.strptime(value, "%Y-%m-%d").date()


def _benefits_payload(
    benefits_path: Path,
    applicant: Any,
    *,
    base_tuition: float,
    base_enrollment: float,
) -> dict[str, Any]:
    benefits_df = load_catalog_df(benefits_path)
    decile = applicant.effective_decile()
    scored_df = score_benefits(benefits_df, applicant, base_tuition=base_tuition, decile=decile)
    eligible_codes = set(scored_df.loc[scored_df["eligible"], "code"])
    eligible_benefits = [
        benefit
        for benefit in (BenefitRecord.from_mapping(record) for record in benefits_df.to_dict(orient="records"))
        if benefit.code in eligible_codes
    ]
    breakdown = calculate_final_tuition(base_tuition, base_enrollment, eligible_benefits, decile)
    return {
        "decile": decile,
        "scored": scored_df.to_dict(orient="records"),
        "final_tuition": breakdown.final_tuition,
        "final_enrollment": breakdown.final_enrollment,
        "total_discounts": breakdown.total_discounts,
        "total_final": breakdown.total_final,
    }


def run_simulation(
    *,
    applicant_path: Path,
    catalog_path: Path,
    state_catalog_path: Path | None = None,
    careers_path: Path | None = None,
    base_tuition: float | None = None,
    config_path: Path | None = None,
    exceptions_path: Path | None = None,
    benefits_path: Path | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    applicant_payload = load_json(applicant_path)
    if not isinstance(applicant_payload, dict):
        raise ValueError(f"Applicant JSON at {applicant_path} must be an object.")
    applicant = profile_from_mapping(applicant_payload)

    config = load_engine_config(config_path)
    exceptions = NamedExceptionTable.from_mapping(load_json(exceptions_path)) if exceptions_path else None
    catalog = load_offers_frame(load_catalog_df(catalog_path))
    state_catalog = (
        load_state_offers(load_catalog_df(state_catalog_path).to_dict(orient="records"))
        if state_catalog_path
        else []
    )
    careers = CareerLookup.from_frame(load_catalog_df(careers_path)) if careers_path else None
    logger.info(
        "Loaded %d offers, %d state offers, %d careers.",
        len(catalog),
        len(state_catalog),
        len(careers) if careers is not None else 0,
    )

    result = simulate(
        applicant,
        catalog,
        careers=careers,
        base_tuition=base_tuition,
        state_catalog=state_catalog,
        config=config,
        exceptions=exceptions,
        today=today,
    )

    payload: dict[str, Any] = {
        "catalog": str(catalog_path),
        "config": config.to_dict(),
        "simulation": result.to_dict(),
    }
    if benefits_path is not None:
        career = careers.get(applicant.career_id) if careers is not None else None
        base_enrollment = career.enrollment_fee if career and career.enrollment_fee else DEFAULT_ENROLLMENT_FEE
        payload["benefits"] = _benefits_payload(
            benefits_path,
            applicant,
            base_tuition=result.base_tuition,
            base_enrollment=base_enrollment,
        )
    return payload


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    payload = run_simulation(
        applicant_path=args.applicant,
        catalog_path=_resolve_catalog_path(args.catalog, args.processed_dir),
        state_catalog_path=args.state_catalog,
        careers_path=args.careers,
        base_tuition=args.base_tuition,
        config_path=args.config,
        exceptions_path=args.exceptions,
        benefits_path=args.benefits,
        today=_coerce_today(args.today),
    )

    simulation = payload["simulation"]
    if args.output is not None:
        write_json_atomic(payload, args.output)
        print(f"Wrote simulation: {args.output}")
    else:
        print(json.dumps(simulation, indent=2, ensure_ascii=False))
    print(
        f"Base {simulation['base_tuition']:,.0f} -> final {simulation['final_tuition']:,.0f} "
        f"(annual savings {simulation['annual_savings']:,.0f}, "
        f"program savings {simulation['program_savings']:,.0f})"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
