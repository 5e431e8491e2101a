from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from simulador_becas.normalize.careers import CareerLookup
from simulador_becas.normalize.catalog import load_offers, load_state_offers
from simulador_becas.normalize.schema import ApplicantProfile, ScholarshipOffer

EVAL_TODAY = date(2026, 3, 1)


@dataclass(frozen=True, slots=True)
class GoldenApplicant:
    applicant_id: str
    description: str
    profile: ApplicantProfile
    expected_applied: tuple[str, ...]
    expected_final_tuition: float
    base_tuition: Optional[float] = None


def reference_career_rows() -> list[dict[str, Any]]:
    return [
        {
            "id": 101,
            "nombre_carrera": "Ingeniería Informática Multimedia",
            "modalidad_programa": "Presencial",
            "nivel_global": "Pregrado",
            "arancel_carrera": 4_200_000,
            "matricula_carrera": 180_000,
            "duracion_en_semestres": 8,
            "vigencia": "SI",
        },
        {
            "id": 102,
            "nombre_carrera": "Psicología",
            "modalidad_programa": "Online",
            "nivel_global": "Pregrado",
            "arancel_carrera": 3_100_000,
            "matricula_carrera": 150_000,
            "duracion_en_semestres": 8,
            "vigencia": "SI",
        },
        {
            "id": 103,
            "nombre_carrera": "Diseño",
            "modalidad_programa": "Vespertino",
            "nivel_global": "Pregrado",
            "arancel_carrera": 3_600_000,
            "matricula_carrera": 160_000,
            "duracion_en_semestres": 8,
            "vigencia": "SI",
        },
        {
            "id": 104,
            "nombre_carrera": "Magíster en Comunicación",
            "modalidad_programa": "Online",
            "nivel_global": "Postgrado",
            "arancel_carrera": 2_800_000,
            "matricula_carrera": 120_000,
            "duracion_en_semestres": 4,
            "vigencia": "SI",
        },
    ]


def reference_catalog_rows() -> list[dict[str, Any]]:
    """`becas_uniacc`-shaped rows covering every discount type and interaction rule."""
    common = {"vigencia_desde": "2025-01-01", "vigencia_hasta": None, "es_combinable": True}
    return [
        {
            **common,
            "codigo_beca": "EXCELENCIA",
            "nombre": "Beca Excelencia Académica",
            "prioridad": 1,
            "tipo_beneficio": "BECA",
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 30,
            "requiere_nem": True,
            "nem_minimo": 6.0,
            "becas_incompatibles": ["MERITO"],
        },
        {
            **common,
            "codigo_beca": "MERITO",
            "nombre": "Beca Mérito",
            "prioridad": 2,
            "tipo_beneficio": "BECA",
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 15,
            "requiere_nem": True,
            "nem_minimo": 5.5,
            "becas_incompatibles": ["EXCELENCIA"],
        },
        {
            **common,
            "codigo_beca": "STEM",
            "nombre": "Beca Mujeres STEM",
            "prioridad": 3,
            "tipo_beneficio": "BECA",
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 25,
            "requiere_genero": "Femenino",
            "carreras_aplicables": ["Ingeniería Civil Industrial"],
        },
        {
            **common,
            "codigo_beca": "EXPERIENCIA",
            "nombre": "Beca Experiencia",
            "prioridad": 4,
            "tipo_beneficio": "BECA",
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 20,
            "modalidades_aplicables": ["Presencial", "Vespertino", "Semipresencial", "Online"],
            "edad_requerida": 25,
        },
        {
            **common,
            "codigo_beca": "REGIONAL",
            "nombre": "Beca Apoyo Regional",
            "prioridad": 5,
            "tipo_beneficio": "BECA",
            "tipo_descuento": "monto_fijo",
            "descuento_monto_fijo": 300_000,
            "requiere_region_especifica": True,
            "region_excluida": "Metropolitana",
        },
        {
            **common,
            "codigo_beca": "PRONTO_PAGO",
            "nombre": "Descuento Pronto Pago",
            "prioridad": 6,
            "tipo_beneficio": "FINANCIERO",
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 5,
        },
        {
            **common,
            "codigo_beca": "CONVENIO",
            "nombre": "Convenio Empresas",
            "prioridad": 7,
            "tipo_beneficio": "FINANCIAMIENTO",
            "tipo_descuento": "mixto",
            "descuento_mixto": {
                "default": 10,
                "rules": [{"when": {"nivel_academico": ["Postgrado"]}, "porcentaje": 20}],
            },
            "es_combinable": False,
        },
        {
            **common,
            "codigo_beca": "CUPOS_AGOTADOS",
            "nombre": "Beca Aniversario",
            "prioridad": 8,
            "tipo_beneficio": "BECA",
            "tipo_descuento": "porcentaje",
            "descuento_porcentaje": 50,
            "cupos_disponibles": 10,
            "cupos_utilizados": 10,
        },
    ]


def reference_state_rows() -> list[dict[str, Any]]:
    return [
        {
            "id": 1,
            "codigo_beca": "BEA",
            "nombre": "Beca Excelencia Académica (Estado)",
            "tipo_descuento": "monto_fijo",
            "descuento_monto": 1_150_000,
            "requiere_nem": False,
            "nem_minimo": None,
            "requiere_paes": False,
            "paes_minimo": None,
            "requeire_decil": True,
            "decil_maximo": 8,
        },
        {
            "id": 2,
            "codigo_beca": "BJGM",
            "nombre": "Beca Juan Gómez Millas",
            "tipo_descuento": "monto_fijo",
            "descuento_monto": 1_150_000,
            "requiere_nem": False,
            "nem_minimo": None,
            "requiere_paes": True,
            "paes_minimo": 500,
            "requeire_decil": True,
            "decil_maximo": 7,
        },
    ]


def reference_catalog() -> tuple[list[ScholarshipOffer], list[ScholarshipOffer], CareerLookup]:
    return (
        load_offers(reference_catalog_rows()),
        load_state_offers(reference_state_rows()),
        CareerLookup.from_records(reference_career_rows()),
    )


def get_golden_applicants() -> list[GoldenApplicant]:
    return [
        GoldenApplicant(
            applicant_id="golden_rm_high_nem_presencial",
            description="Santiago school leaver with NEM 6.5; excellence blocks merit, exclusive agreement skipped.",
            profile=ApplicantProfile(
                nem=6.5,
                took_paes=True,
                paes_math=700,
                paes_language=650,
                graduation_year=2025,
                decile=5,
                region="Metropolitana",
                gender="Masculino",
                birth_year=2007,
                career="Ingeniería Informática Multimedia",
                career_id=101,
            ),
            expected_applied=("EXCELENCIA", "PRONTO_PAGO"),
            expected_final_tuition=2_793_000.0,
        ),
        GoldenApplicant(
            applicant_id="golden_region_woman_stem_state",
            description="Valparaíso applicant using state aid; STEM carve-out admits her career.",
            profile=ApplicantProfile(
                nem=5.8,
                took_paes=True,
                paes_math=560,
                paes_language=610,
                graduation_year=2024,
                decile=4,
                region="Valparaíso",
                uses_state_scholarships=True,
                gender="Femenino",
                birth_year=2006,
                career="Ingeniería Informática Multimedia",
                career_id=101,
            ),
            expected_applied=("MERITO", "STEM", "REGIONAL", "PRONTO_PAGO"),
            expected_final_tuition=865_687.5,
        ),
        GoldenApplicant(
            applicant_id="golden_online_adult_postgrado",
            description="Working adult in an online master's; EXPERIENCIA resolves to the online rate.",
            profile=ApplicantProfile(
                nem=5.0,
                graduation_year=2008,
                decile=6,
                region="Biobío",
                gender="Masculino",
                birth_year=1990,
                career="Magíster en Comunicación",
                career_id=104,
            ),
            expected_applied=("EXPERIENCIA", "REGIONAL", "PRONTO_PAGO"),
            expected_final_tuition=1_577_000.0,
        ),
        GoldenApplicant(
            applicant_id="golden_stale_career_reference",
            description="Career id no longer in the catalog; modality-gated offers fail without aborting.",
            profile=ApplicantProfile(
                nem=6.2,
                decile=3,
                region="Metropolitana",
                gender="Femenino",
                birth_year=1995,
                career="Carrera Antigua",
                career_id=999,
            ),
            expected_applied=("EXCELENCIA", "PRONTO_PAGO"),
            expected_final_tuition=1_995_000.0,
            base_tuition=3_000_000.0,
        ),
    ]
