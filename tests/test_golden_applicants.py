from __future__ import annotations

from pathlib import Path

from simulador_becas.eval.golden_applicants import get_golden_applicants, reference_catalog
from scripts.evaluate_golden_applicants import run_evaluation


def test_golden_applicants_have_unique_ids() -> None:
    applicants = get_golden_applicants()

    assert len({item.applicant_id for item in applicants}) == len(applicants)
    assert all(item.expected_applied for item in applicants)


def test_reference_catalog_loads() -> None:
    offers, state_offers, careers = reference_catalog()

    assert len(offers) == 8
    assert len(state_offers) == 2
    assert careers.get(104).level == "Postgrado"


def test_run_evaluation_writes_reports(tmp_path: Path) -> None:
    payload = run_evaluation(reports_dir=tmp_path)

    assert payload["all_passed"] is True
    assert payload["metrics"]["stacking_stability"]["is_stable"] is True
    assert payload["metrics"]["applied_offer_frequency"]["PRONTO_PAGO"] == 4
    assert Path(payload["artifact_paths"]["markdown"]).exists()
    assert Path(payload["artifact_paths"]["json"]).exists()
    markdown = Path(payload["artifact_paths"]["markdown"]).read_text(encoding="utf-8")
    assert "# Golden Applicant Offline Evaluation" in markdown
    assert "Expectations met: 4/4" in markdown
