from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from simulador_becas.normalize.schema import (
    ApplicantProfile,
    DiscountType,
    OfferCategory,
    ScholarshipOffer,
)
from simulador_becas.rank.named_exceptions import parse_mixed_rules

logger = logging.getLogger(__name__)

REQUIRED_OFFER_FIELDS = ("code", "name", "priority", "discount_type", "effective_from")

# `becas_uniacc` / `becas_estado` columns -> ScholarshipOffer fields.
BECAS_COLUMNS: dict[str, str] = {
    "codigo_beca": "code",
    "nombre": "name",
    "prioridad": "priority",
    "tipo_descuento": "discount_type",
    "tipo_beneficio": "category",
    "descuento_porcentaje": "percentage",
    "descuento_monto_fijo": "fixed_amount",
    "descuento_monto": "fixed_amount",
    "descuento_mixto": "mixed_discount",
    "nem_minimo": "min_nem",
    "paes_minimo": "min_paes",
    "ranking_minimo": "min_ranking",
    "requiere_beca_estado": "requires_state_scholarship",
    "requiere_region_especifica": "requires_region",
    "region_excluida": "excluded_region",
    "region_requerida": "required_region",
    "requiere_genero": "required_gender",
    "nacionalidad_requerida": "required_nationality",
    "requiere_extranjeria": "requires_foreign",
    "requiere_residencia_chile": "requires_chile_residency",
    "edad_requerida": "min_age",
    "carreras_aplicables": "eligible_careers",
    "programas_excluidos": "excluded_program_types",
    "modalidades_aplicables": "modalities",
    "max_anos_egreso": "max_years_since_graduation",
    "max_anos_paes": "max_years_since_paes",
    "vigencia_desde": "effective_from",
    "vigencia_hasta": "effective_until",
    "cupos_disponibles": "total_slots",
    "cupos_utilizados": "used_slots",
    "institucion_requerida": "required_institution",
    "decil_maximo": "max_decile",
    "es_combinable": "combinable",
    "becas_incompatibles": "incompatible_codes",
    "descripcion": "description",
}

# Source `requiere_*` switches: when present but not true the paired threshold is ignored.
REQUIREMENT_SWITCHES: dict[str, str] = {
    "requiere_nem": "min_nem",
    "requiere_paes": "min_paes",
    "requiere_ranking": "min_ranking",
    "requeire_decil": "max_decile",
    "requiere_decil": "max_decile",
    "requiere_nacionalidad": "required_nationality",
    "requiere_institucion": "required_institution",
}

DISCOUNT_TYPE_ALIASES: dict[str, DiscountType] = {
    "percentage": DiscountType.PERCENTAGE,
    "porcentaje": DiscountType.PERCENTAGE,
    "fixed_amount": DiscountType.FIXED_AMOUNT,
    "monto_fijo": DiscountType.FIXED_AMOUNT,
    "mixed": DiscountType.MIXED,
    "mixto": DiscountType.MIXED,
}


class CatalogValidationError(ValueError):
    """Raised when a catalog record cannot be turned into a valid offer."""

    def __init__(self, field: str, message: str, *, offer_code: str | None = None) -> None:
        self.field = field
        self.offer_code = offer_code
        prefix = f"Offer '{offer_code}'" if offer_code else "Offer"
        super().__init__(f"{prefix}: field '{field}' {message}")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, np.ndarray)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _rename_record(record: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, raw in record.items():
        target = BECAS_COLUMNS.get(key, key)
        if target in values and _is_missing(raw):
            continue
        values[target] = raw

    for switch, target in REQUIREMENT_SWITCHES.items():
        if switch in record and (_is_missing(record[switch]) or not record[switch]):
            values[target] = None
    return values


def _as_date(value: Any, field: str, code: str | None) -> date | None:
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            return datetime.fromisoformat(cleaned.replace("Z", "+00:00")).date()
        except ValueError:
            raise CatalogValidationError(field, f"is not an ISO date ({value!r}).", offer_code=code) from None
    raise CatalogValidationError(field, f"is not a date ({value!r}).", offer_code=code)


def _as_float(value: Any, field: str, code: str | None) -> float | None:
    if _is_missing(value):
        return None
    if isinstance(value, bool):
        raise CatalogValidationError(field, "must be numeric, not boolean.", offer_code=code)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise CatalogValidationError(field, f"must be numeric ({value!r}).", offer_code=code) from None


def _as_int(value: Any, field: str, code: str | None) -> int | None:
    as_float = _as_float(value, field, code)
    if as_float is None:
        return None
    if not as_float.is_integer():
        raise CatalogValidationError(field, f"must be an integer ({value!r}).", offer_code=code)
    return int(as_float)


def _as_bool(value: Any, field: str, code: str | None) -> bool | None:
    if _is_missing(value):
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "si", "sí", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    raise CatalogValidationError(field, f"must be a boolean ({value!r}).", offer_code=code)


def _as_text(value: Any) -> str | None:
    if _is_missing(value):
        return None
    text = str(value).strip()
    return text or None


def _as_tuple(value: Any) -> tuple[str, ...]:
    if _is_missing(value):
        return ()
    if isinstance(value, str):
        text = value.strip()
        return (text,) if text else ()
    if isinstance(value, (list, tuple, set, np.ndarray)):
        return tuple(str(item).strip() for item in value if not _is_missing(item) and str(item).strip())
    return (str(value).strip(),)


def _parse_discount_type(value: Any, code: str | None) -> DiscountType:
    if isinstance(value, DiscountType):
        return value
    key = _as_text(value)
    if key is None or key.lower() not in DISCOUNT_TYPE_ALIASES:
        raise CatalogValidationError(
            "discount_type",
            f"must be one of percentage/fixed_amount/mixed ({value!r}).",
            offer_code=code,
        )
    return DISCOUNT_TYPE_ALIASES[key.lower()]


def _parse_category(value: Any, code: str | None) -> OfferCategory | None:
    if isinstance(value, OfferCategory):
        return value
    text = _as_text(value)
    if text is None:
        return None
    try:
        return OfferCategory(text.upper())
    except ValueError:
        raise CatalogValidationError("category", f"is not a known category ({value!r}).", offer_code=code) from None


def offer_from_record(record: Mapping[str, Any]) -> ScholarshipOffer:
    """Build an offer from canonical or `becas_uniacc`-shaped keys, validating as it goes."""
    values = _rename_record(record)
    code = _as_text(values.get("code"))
    if code is None and not _is_missing(values.get("id")):
        code = str(values["id"]).strip()

    for field in REQUIRED_OFFER_FIELDS:
        raw = code if field == "code" else values.get(field)
        if _is_missing(raw) or (isinstance(raw, str) and not raw.strip()):
            raise CatalogValidationError(field, "is required.", offer_code=code)

    discount_type = _parse_discount_type(values["discount_type"], code)
    percentage = _as_float(values.get("percentage"), "percentage", code)
    fixed_amount = _as_float(values.get("fixed_amount"), "fixed_amount", code)
    if percentage is not None and percentage < 0:
        raise CatalogValidationError("percentage", "must be non-negative.", offer_code=code)
    if fixed_amount is not None and fixed_amount < 0:
        raise CatalogValidationError("fixed_amount", "must be non-negative.", offer_code=code)

    mixed_payload = values.get("mixed_discount")
    if isinstance(mixed_payload, str) and mixed_payload.strip():
        try:
            mixed_payload = json.loads(mixed_payload)
        except json.JSONDecodeError:
            raise CatalogValidationError("mixed_discount", "is not valid JSON.", offer_code=code) from None
    mixed_rules = ()
    mixed_default = None
    if isinstance(mixed_payload, Mapping):
        try:
            mixed_rules = parse_mixed_rules(mixed_payload.get("rules"))
        except ValueError as exc:
            raise CatalogValidationError("mixed_discount", str(exc), offer_code=code) from None
        mixed_default = _as_float(mixed_payload.get("default"), "mixed_discount", code)

    effective_from = _as_date(values["effective_from"], "effective_from", code)
    effective_until = _as_date(values.get("effective_until"), "effective_until", code)
    if effective_from and effective_until and effective_until < effective_from:
        raise CatalogValidationError("effective_until", "is before effective_from.", offer_code=code)

    used_slots = _as_int(values.get("used_slots"), "used_slots", code) or 0
    combinable = _as_bool(values.get("combinable"), "combinable", code)

    return ScholarshipOffer(
        code=code,
        name=str(values["name"]).strip(),
        priority=_as_int(values["priority"], "priority", code),
        discount_type=discount_type,
        effective_from=effective_from,
        category=_parse_category(values.get("category"), code),
        percentage=percentage,
        fixed_amount=fixed_amount,
        mixed_rules=mixed_rules,
        mixed_default=mixed_default,
        min_nem=_as_float(values.get("min_nem"), "min_nem", code),
        min_paes=_as_float(values.get("min_paes"), "min_paes", code),
        min_ranking=_as_float(values.get("min_ranking"), "min_ranking", code),
        requires_state_scholarship=_as_bool(
            values.get("requires_state_scholarship"), "requires_state_scholarship", code
        ),
        requires_region=bool(_as_bool(values.get("requires_region"), "requires_region", code)),
        excluded_region=_as_text(values.get("excluded_region")),
        required_region=_as_text(values.get("required_region")),
        required_gender=_as_text(values.get("required_gender")),
        required_nationality=_as_text(values.get("required_nationality")),
        requires_foreign=_as_bool(values.get("requires_foreign"), "requires_foreign", code),
        requires_chile_residency=_as_bool(
            values.get("requires_chile_residency"), "requires_chile_residency", code
        ),
        eligible_careers=_as_tuple(values.get("eligible_careers")),
        excluded_program_types=_as_tuple(values.get("excluded_program_types")),
        modalities=_as_tuple(values.get("modalities")),
        max_years_since_graduation=_as_int(
            values.get("max_years_since_graduation"), "max_years_since_graduation", code
        ),
        max_years_since_paes=_as_int(values.get("max_years_since_paes"), "max_years_since_paes", code),
        min_age=_as_int(values.get("min_age"), "min_age", code),
        effective_until=effective_until,
        total_slots=_as_int(values.get("total_slots"), "total_slots", code),
        used_slots=used_slots,
        required_institution=_as_text(values.get("required_institution")),
        max_decile=_as_int(values.get("max_decile"), "max_decile", code),
        combinable=True if combinable is None else combinable,
        incompatible_codes=_as_tuple(values.get("incompatible_codes")),
        description=_as_text(values.get("description")),
    )


def load_offers(records: Iterable[Mapping[str, Any]]) -> list[ScholarshipOffer]:
    offers: list[ScholarshipOffer] = []
    seen: set[str] = set()
    for record in records:
        offer = offer_from_record(record)
        # Prelation compares codes case-insensitively.
        key = offer.code.strip().upper()
        if key in seen:
            raise CatalogValidationError("code", "is duplicated in the catalog.", offer_code=offer.code)
        seen.add(key)
        offers.append(offer)
    logger.debug("Loaded %d offers.", len(offers))
    return offers


def load_offers_frame(df: pd.DataFrame) -> list[ScholarshipOffer]:
    return load_offers(df.to_dict(orient="records"))


# `becas_estado` rows carry no validity window; they are treated as always in force.
STATE_EFFECTIVE_FROM = date(1970, 1, 1)


def state_offer_from_record(record: Mapping[str, Any]) -> ScholarshipOffer:
    """Map a `becas_estado` row; these offers only apply when the applicant uses state aid."""
    values = dict(record)
    row_id = values.get("id")
    if _is_missing(values.get("codigo_beca")):
        if _is_missing(row_id):
            raise CatalogValidationError("code", "is required.")
        values["codigo_beca"] = f"ESTADO-{row_id}"
    if _is_missing(values.get("nombre")):
        values["nombre"] = values["codigo_beca"]
    if _is_missing(values.get("prioridad")) and _is_missing(values.get("priority")):
        values["prioridad"] = row_id
    if _is_missing(values.get("vigencia_desde")) and _is_missing(values.get("effective_from")):
        values["vigencia_desde"] = STATE_EFFECTIVE_FROM
    if _is_missing(values.get("tipo_descuento")) and _is_missing(values.get("discount_type")):
        values["tipo_descuento"] = "monto_fijo" if _is_missing(values.get("descuento_porcentaje")) else "porcentaje"
    values["requiere_beca_estado"] = True
    values.pop("created_at", None)
    return offer_from_record(values)


def load_state_offers(records: Iterable[Mapping[str, Any]]) -> list[ScholarshipOffer]:
    return [state_offer_from_record(record) for record in records]


def offers_to_frame(offers: Iterable[ScholarshipOffer]) -> pd.DataFrame:
    rows: list[dict[str, Any]] = []
    for offer in offers:
        rows.append(
            {
                "code": offer.code,
                "name": offer.name,
                "priority": offer.priority,
                "category": offer.category.value if offer.category else None,
                "discount_type": offer.discount_type.value,
                "percentage": offer.percentage,
                "fixed_amount": offer.fixed_amount,
                "effective_from": offer.effective_from.isoformat(),
                "effective_until": offer.effective_until.isoformat() if offer.effective_until else None,
                "total_slots": offer.total_slots,
                "used_slots": offer.used_slots,
                "combinable": offer.combinable,
                "incompatible_codes": list(offer.incompatible_codes),
            }
        )
    return pd.DataFrame(rows)


# FormData (wizard) keys -> ApplicantProfile fields.
FORM_FIELDS: dict[str, str] = {
    "nombre": "first_name",
    "apellido": "last_name",
    "rendioPAES": "took_paes",
    "añoEgreso": "graduation_year",
    "colegio": "school",
    "ingresoMensual": "monthly_income",
    "integrantes": "household_size",
    "decil": "decile",
    "regionResidencia": "region",
    "regionId": "region_id",
    "usaBecasEstado": "uses_state_scholarships",
    "genero": "gender",
    "nacionalidad": "nationality",
    "extranjero": "is_foreign",
    "residencia_chilena": "resides_in_chile",
    "anio_nacimiento": "birth_year",
    "carrera": "career",
    "carreraId": "career_id",
    "tipoPrograma": "program_type",
    "institucionId": "institution_id",
}
_PROFILE_FLOATS = ("nem", "ranking", "paes_math", "paes_language", "paes_science", "paes_history", "monthly_income")
_PROFILE_INTS = ("graduation_year", "household_size", "decile", "region_id", "birth_year", "career_id")
_PROFILE_BOOLS = ("took_paes", "uses_state_scholarships", "is_foreign", "resides_in_chile")


def profile_from_mapping(payload: Mapping[str, Any]) -> ApplicantProfile:
    """Build a profile from canonical keys or the simulator wizard's form keys."""
    values: dict[str, Any] = {}
    for key, raw in payload.items():
        values[FORM_FIELDS.get(key, key)] = raw

    paes = values.pop("paes", None)
    if isinstance(paes, Mapping):
        values.setdefault("paes_math", paes.get("matematica"))
        values.setdefault("paes_language", paes.get("lenguaje"))
        values.setdefault("paes_science", paes.get("ciencias"))
        values.setdefault("paes_history", paes.get("historia"))

    known = set(ApplicantProfile.__dataclass_fields__)
    kwargs: dict[str, Any] = {}
    for name in known:
        raw = values.get(name)
        if _is_missing(raw) or (isinstance(raw, str) and not raw.strip()):
            continue
        if name in _PROFILE_FLOATS:
            kwargs[name] = _as_float(raw, name, None)
        elif name in _PROFILE_INTS:
            kwargs[name] = _as_int(raw, name, None)
        elif name in _PROFILE_BOOLS:
            kwargs[name] = bool(_as_bool(raw, name, None))
        else:
            kwargs[name] = str(raw).strip()
    return ApplicantProfile(**kwargs)
