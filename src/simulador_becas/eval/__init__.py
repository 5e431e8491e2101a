"""Offline evaluation helpers for golden applicant profiles."""

from simulador_becas.eval.catalog_quality import CatalogAudit, audit_catalog
from simulador_becas.eval.golden_applicants import GoldenApplicant, get_golden_applicants, reference_catalog

__all__ = [
    "CatalogAudit",
    "GoldenApplicant",
    "audit_catalog",
    "get_golden_applicants",
    "reference_catalog",
]
