from __future__ import annotations

import argparse
import json
import math
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR / "src") not in sys.path:
    sys.path.insert(0, str(ROOT_DIR / "src"))

from simulador_becas.eval.golden_applicants import (
    EVAL_TODAY,
    GoldenApplicant,
    get_golden_applicants,
    reference_catalog,
)
from simulador_becas.eval.metrics import (
    applied_offer_frequency,
    eligibility_rate,
    savings_distribution_stats,
    stacking_stability,
)
from simulador_becas.normalize.careers import CareerLookup
from simulador_becas.normalize.schema import ScholarshipOffer
from simulador_becas.rank.policy import EngineConfig, load_engine_config
from simulador_becas.rank.simulation import simulate
from simulador_becas.rank.stage1_eligibility import eligibility_frame

TUITION_TOLERANCE = 0.01


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Offline evaluation against golden applicant profiles.")
    parser.add_argument(
        "--reports-dir",
        type=Path,
        default=ROOT_DIR / "reports",
        help="Output directory for markdown and JSON artifacts.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional engine config JSON. Expectations assume the baseline config.",
    )
    return parser.parse_args()


def _run_per_applicant(
    applicants: list[GoldenApplicant],
    catalog: list[ScholarshipOffer],
    state_catalog: list[ScholarshipOffer],
    careers: CareerLookup,
    config: EngineConfig,
) -> list[dict[str, Any]]:
    per_applicant: list[dict[str, Any]] = []
    for applicant in applicants:
        result = simulate(
            applicant.profile,
            catalog,
            careers=careers,
            base_tuition=applicant.base_tuition,
            state_catalog=state_catalog,
            config=config,
            today=EVAL_TODAY,
        )
        eligible_df, ineligible_df = eligibility_frame(result.eligibility)
        applied = result.state_stage.applied_codes() + result.internal_stage.applied_codes()
        per_applicant.append(
            {
                "applicant_id": applicant.applicant_id,
                "description": applicant.description,
                "eligible_df": eligible_df,
                "ineligible_df": ineligible_df,
                "result": result,
                "internal_applied": result.internal_stage.applied_codes(),
                "applied": applied,
            }
        )
    return per_applicant


def _expectation_checks(
    applicants: list[GoldenApplicant],
    per_applicant: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    checks: list[dict[str, Any]] = []
    for applicant, outcome in zip(applicants, per_applicant):
        result = outcome["result"]
        applied_ok = tuple(outcome["internal_applied"]) == applicant.expected_applied
        tuition_ok = math.isclose(
            result.final_tuition,
            applicant.expected_final_tuition,
            abs_tol=TUITION_TOLERANCE,
        )
        checks.append(
            {
                "applicant_id": applicant.applicant_id,
                "expected_applied": list(applicant.expected_applied),
                "actual_applied": outcome["internal_applied"],
                "expected_final_tuition": applicant.expected_final_tuition,
                "actual_final_tuition": result.final_tuition,
                "passed": applied_ok and tuition_ok,
            }
        )
    return checks


def _metrics_payload(
    run_one: list[dict[str, Any]],
    run_two: list[dict[str, Any]],
) -> dict[str, Any]:
    run_one_codes = {outcome["applicant_id"]: outcome["applied"] for outcome in run_one}
    run_two_codes = {outcome["applicant_id"]: outcome["applied"] for outcome in run_two}
    return {
        "eligibility": eligibility_rate(run_one),
        "annual_savings": savings_distribution_stats(
            {outcome["applicant_id"]: outcome["result"].annual_savings for outcome in run_one}
        ),
        "applied_offer_frequency": applied_offer_frequency(run_one_codes),
        "stacking_stability": stacking_stability(run_one_codes, run_two_codes),
    }


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")


def _format_money(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    return f"{float(value):,.1f}"


def _markdown_report(
    *,
    generated_at: str,
    config: EngineConfig,
    metrics: dict[str, Any],
    checks: list[dict[str, Any]],
    per_applicant: list[dict[str, Any]],
) -> str:
    lines: list[str] = []
    lines.append("# Golden Applicant Offline Evaluation")
    lines.append("")
    lines.append(f"- Generated at (UTC): {generated_at}")
    lines.append(f"- Evaluation date: {EVAL_TODAY.isoformat()}")
    lines.append(f"- Golden applicants: {len(checks)}")
    lines.append(f"- Stacking policy: `{config.stacking_policy.value}`")
    lines.append(f"- Percentage basis: `{config.percentage_basis.value}`")
    lines.append(f"- Reason policy: `{config.reason_policy.value}`")
    lines.append("")
    lines.append("## Metrics Summary")
    lines.append("")

    eligibility = metrics["eligibility"]
    savings = metrics["annual_savings"]
    lines.append(f"- Eligibility rate: {eligibility['eligibility_rate']:.4f}")
    lines.append(f"- Eligible count: {eligibility['eligible_count']}")
    lines.append(f"- Total evaluated offers: {eligibility['total_count']}")
    lines.append(
        f"- Annual savings (mean/median/max): "
        f"{_format_money(savings['mean'])} / {_format_money(savings['median'])} / {_format_money(savings['max'])}"
    )
    lines.append(f"- Stacking stability: {metrics['stacking_stability']['is_stable']}")
    passed = sum(1 for check in checks if check["passed"])
    lines.append(f"- Expectations met: {passed}/{len(checks)}")
    lines.append("")
    lines.append("### Ineligible Reason Breakdown")
    lines.append("")
    reason_breakdown = eligibility["ineligible_reason_breakdown"]
    if reason_breakdown:
        for reason, count in reason_breakdown.items():
            lines.append(f"- {reason}: {count}")
    else:
        lines.append("- None")
    lines.append("")
    lines.append("## Per Applicant")
    lines.append("")

    for check, outcome in zip(checks, per_applicant):
        result = outcome["result"]
        lines.append(f"### {check['applicant_id']}")
        lines.append("")
        lines.append(f"- Description: {outcome['description']}")
        lines.append(f"- Expectation met: {check['passed']}")
        lines.append(
            f"- Base {_format_money(result.base_tuition)} -> final {_format_money(result.final_tuition)}"
        )
        lines.append("")
        if not result.state_stage.applied and not result.internal_stage.applied:
            lines.append("No offers applied for this applicant.")
            lines.append("")
            continue
        lines.append("| stage | code | priority | discount | balance_after |")
        lines.append("|---|---|---:|---:|---:|")
        for stage_name, stage in (("state", result.state_stage), ("internal", result.internal_stage)):
            for item in stage.applied:
                lines.append(
                    f"| {stage_name} | {item.offer.code} | {item.offer.priority} | "
                    f"{_format_money(item.discount)} | {_format_money(item.balance_after)} |"
                )
        lines.append("")

    return "\n".join(lines)


def _to_serializable_results(per_applicant: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "applicant_id": outcome["applicant_id"],
            "description": outcome["description"],
            "eligible_count": int(len(outcome["eligible_df"])),
            "ineligible_count": int(len(outcome["ineligible_df"])),
            "simulation": outcome["result"].to_dict(),
        }
        for outcome in per_applicant
    ]


def run_evaluation(
    *,
    reports_dir: Path,
    config: EngineConfig | None = None,
) -> dict[str, Any]:
    active_config = config or EngineConfig.baseline()
    catalog, state_catalog, careers = reference_catalog()
    applicants = get_golden_applicants()

    run_one = _run_per_applicant(applicants, catalog, state_catalog, careers, active_config)
    run_two = _run_per_applicant(applicants, catalog, state_catalog, careers, active_config)
    metrics = _metrics_payload(run_one, run_two)
    checks = _expectation_checks(applicants, run_one)

    timestamp = datetime.now(tz=UTC).strftime("%Y%m%d_%H%M%S")
    generated_at = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    markdown_path = reports_dir / f"golden_eval_{timestamp}.md"
    json_path = reports_dir / "artifacts" / f"golden_eval_{timestamp}.json"

    markdown_text = _markdown_report(
        generated_at=generated_at,
        config=active_config,
        metrics=metrics,
        checks=checks,
        per_applicant=run_one,
    )
    markdown_path.parent.mkdir(parents=True, exist_ok=True)
    markdown_path.write_text(markdown_text, encoding="utf-8")

    payload = {
        "generated_at": generated_at,
        "evaluation_date": EVAL_TODAY.isoformat(),
        "golden_applicants_count": len(applicants),
        "config": active_config.to_dict(),
        "metrics": metrics,
        "checks": checks,
        "all_passed": all(check["passed"] for check in checks),
        "per_applicant": _to_serializable_results(run_one),
        "artifact_paths": {"markdown": str(markdown_path), "json": str(json_path)},
    }
    _write_json(json_path, payload)
    return payload


def main() -> int:
    args = parse_args()
    reports_dir = args.reports_dir if args.reports_dir.is_absolute() else ROOT_DIR / args.reports_dir
    payload = run_evaluation(reports_dir=reports_dir, config=load_engine_config(args.config))

    print(f"Wrote markdown report: {payload['artifact_paths']['markdown']}")
    print(f"Wrote JSON artifact: {payload['artifact_paths']['json']}")
    for check in payload["checks"]:
        status = "ok" if check["passed"] else "MISMATCH"
        print(f"{check['applicant_id']}: {status} final={check['actual_final_tuition']:,.1f}")
    return 0 if payload["all_passed"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
