from __future__ import annotations

from datetime import date

import pandas as pd
import pytest

from simulador_becas.normalize.catalog import (
    CatalogValidationError,
    load_offers,
    load_offers_frame,
    offer_from_record,
    offers_to_frame,
    profile_from_mapping,
    state_offer_from_record,
)
from simulador_becas.normalize.schema import DiscountType, OfferCategory


def _row(**overrides) -> dict:  # noqa: ANN003
    row = {
        "codigo_beca": "MERITO",
        "nombre": "Beca Mérito",
        "prioridad": 2,
        "tipo_descuento": "porcentaje",
        "descuento_porcentaje": 15,
        "vigencia_desde": "2025-01-01",
    }
    row.update(overrides)
    return row


def test_becas_uniacc_row_maps_to_offer() -> None:
    offer = offer_from_record(
        _row(
            tipo_beneficio="beca",
            vigencia_hasta="2026-12-31T23:59:59Z",
            requiere_nem=True,
            nem_minimo=5.5,
            becas_incompatibles=["EXCELENCIA"],
            cupos_disponibles=20,
            cupos_utilizados=None,
            es_combinable=None,
        )
    )

    assert offer.code == "MERITO"
    assert offer.discount_type == DiscountType.PERCENTAGE
    assert offer.category == OfferCategory.BECA
    assert offer.percentage == 15.0
    assert offer.min_nem == 5.5
    assert offer.effective_from == date(2025, 1, 1)
    assert offer.effective_until == date(2026, 12, 31)
    assert offer.incompatible_codes == ("EXCELENCIA",)
    assert offer.total_slots == 20
    assert offer.used_slots == 0
    assert offer.combinable is True


def test_requirement_switch_off_disables_threshold() -> None:
    offer = offer_from_record(_row(requiere_nem=False, nem_minimo=6.0, requiere_paes=None, paes_minimo=500))

    assert offer.min_nem is None
    assert offer.min_paes is None


@pytest.mark.parametrize("field", ["codigo_beca", "nombre", "prioridad", "tipo_descuento", "vigencia_desde"])
def test_missing_required_field_raises_with_context(field: str) -> None:
    row = _row()
    row.pop(field)

    with pytest.raises(CatalogValidationError) as excinfo:
        offer_from_record(row)

    assert excinfo.value.field in {"code", "name", "priority", "discount_type", "effective_from"}


def test_validation_error_names_offer_and_field() -> None:
    with pytest.raises(CatalogValidationError) as excinfo:
        offer_from_record(_row(descuento_porcentaje=-5))

    assert excinfo.value.offer_code == "MERITO"
    assert excinfo.value.field == "percentage"
    assert "Offer 'MERITO'" in str(excinfo.value)


def test_bad_dates_and_types_are_rejected() -> None:
    with pytest.raises(CatalogValidationError, match="effective_until"):
        offer_from_record(_row(vigencia_hasta="2024-01-01"))
    with pytest.raises(CatalogValidationError, match="ISO date"):
        offer_from_record(_row(vigencia_desde="mañana"))
    with pytest.raises(CatalogValidationError, match="discount_type"):
        offer_from_record(_row(tipo_descuento="regalo"))
    with pytest.raises(CatalogValidationError, match="priority"):
        offer_from_record(_row(prioridad="alta"))


def test_mixed_discount_accepts_json_text() -> None:
    offer = offer_from_record(
        _row(
            tipo_descuento="mixto",
            descuento_porcentaje=None,
            descuento_mixto='{"default": 10, "rules": [{"when": {"nivel_academico": ["Postgrado"]}, "porcentaje": 20}]}',
        )
    )

    assert offer.discount_type == DiscountType.MIXED
    assert offer.mixed_default == 10.0
    assert offer.mixed_rules[0].percentage == 20.0
    assert offer.mixed_rules[0].conditions() == {"nivel_academico": ("Postgrado",)}

    with pytest.raises(CatalogValidationError, match="JSON"):
        offer_from_record(_row(tipo_descuento="mixto", descuento_mixto="{not json"))


def test_duplicate_codes_are_rejected() -> None:
    with pytest.raises(CatalogValidationError, match="duplicated"):
        load_offers([_row(), _row(prioridad=3)])


def test_duplicate_codes_differing_only_in_case_are_rejected() -> None:
    with pytest.raises(CatalogValidationError, match="duplicated"):
        load_offers([_row(codigo_beca="Beca1"), _row(codigo_beca=" BECA1", prioridad=3)])

    assert [offer.code for offer in load_offers([_row(codigo_beca="Beca1"), _row(codigo_beca="Beca2")])] == [
        "Beca1",
        "Beca2",
    ]


def test_load_offers_frame_handles_nan_cells() -> None:
    df = pd.DataFrame(
        [
            _row(),
            _row(codigo_beca="FIJO", tipo_descuento="monto_fijo", descuento_porcentaje=None, descuento_monto_fijo=300_000),
        ]
    )

    offers = load_offers_frame(df)

    assert [offer.code for offer in offers] == ["MERITO", "FIJO"]
    assert offers[0].fixed_amount is None
    assert offers[1].percentage is None
    assert offers[1].fixed_amount == 300_000.0

    frame = offers_to_frame(offers)
    assert list(frame["code"]) == ["MERITO", "FIJO"]
    assert frame.loc[1, "discount_type"] == "fixed_amount"


def test_state_offer_row_defaults() -> None:
    offer = state_offer_from_record(
        {
            "id": 7,
            "nombre": "Beca Bicentenario",
            "descuento_monto": 1_150_000,
            "requiere_nem": False,
            "nem_minimo": 5.0,
            "requeire_decil": True,
            "decil_maximo": 7,
            "created_at": "2024-05-01T00:00:00Z",
        }
    )

    assert offer.code == "ESTADO-7"
    assert offer.priority == 7
    assert offer.discount_type == DiscountType.FIXED_AMOUNT
    assert offer.fixed_amount == 1_150_000.0
    assert offer.requires_state_scholarship is True
    assert offer.min_nem is None
    assert offer.max_decile == 7


def test_profile_from_wizard_payload() -> None:
    profile = profile_from_mapping(
        {
            "nombre": "Ana",
            "nem": "6.1",
            "rendioPAES": True,
            "paes": {"matematica": 640, "lenguaje": 700, "ciencias": None},
            "añoEgreso": 2024,
            "decil": "4",
            "regionResidencia": "Valparaíso",
            "usaBecasEstado": "si",
            "genero": "Femenino",
            "carreraId": 101,
            "colegio": "",
        }
    )

    assert profile.first_name == "Ana"
    assert profile.nem == 6.1
    assert profile.took_paes is True
    assert profile.paes_score() == 700
    assert profile.paes_science is None
    assert profile.graduation_year == 2024
    assert profile.decile == 4
    assert profile.uses_state_scholarships is True
    assert profile.career_id == 101
    assert profile.school is None
    assert profile.resides_in_chile is True
