"""Business exceptions keyed by offer code.

Two kinds exist today:

* ``CareerCarveOut`` lets an offer accept a career outside its whitelist when the
  applicant matches a gender and the career name contains every keyword
  (the STEM scholarship for women in Ingeniería Informática Multimedia).
* ``PercentageOverride`` replaces an offer's provisional percentage using rules on
  the resolved career context (EXPERIENCIA: 20% in-person/evening/blended,
  30% online).

Tables are plain data so they can be loaded from JSON next to the catalog.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from simulador_becas.normalize.schema import MixedDiscountRule
from simulador_becas.normalize.text import fold_list, fold_text


@dataclass(frozen=True, slots=True)
class CareerCarveOut:
    code: str
    gender: str
    career_keywords: tuple[str, ...]
    message: str

    def applies_to(self, gender: str | None) -> bool:
        return fold_text(gender) is not None and fold_text(gender) == fold_text(self.gender)

    def matches_career(self, career: str | None) -> bool:
        folded_career = fold_text(career)
        if not folded_career:
            return False
        return all(keyword in folded_career for keyword in fold_list(list(self.career_keywords)))


@dataclass(frozen=True, slots=True)
class PercentageOverride:
    code: str
    rules: tuple[MixedDiscountRule, ...]
    default: float | None = None


@dataclass(frozen=True, slots=True)
class NamedExceptionTable:
    carve_outs: Mapping[str, CareerCarveOut] = field(default_factory=dict)
    percentage_overrides: Mapping[str, PercentageOverride] = field(default_factory=dict)

    def carve_out_for(self, code: str) -> CareerCarveOut | None:
        return self.carve_outs.get(_code_key(code))

    def override_for(self, code: str) -> PercentageOverride | None:
        return self.percentage_overrides.get(_code_key(code))

    @classmethod
    def empty(cls) -> NamedExceptionTable:
        return cls()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> NamedExceptionTable:
        values = payload or {}
        carve_outs: dict[str, CareerCarveOut] = {}
        for item in values.get("career_carve_outs") or []:
            carve_out = CareerCarveOut(
                code=str(item["code"]),
                gender=str(item["gender"]),
                career_keywords=tuple(str(keyword) for keyword in item.get("career_keywords") or ()),
                message=str(item.get("message") or "No aplica para la carrera seleccionada"),
            )
            carve_outs[_code_key(carve_out.code)] = carve_out

        overrides: dict[str, PercentageOverride] = {}
        for item in values.get("percentage_overrides") or []:
            default = item.get("default")
            override = PercentageOverride(
                code=str(item["code"]),
                rules=parse_mixed_rules(item.get("rules")),
                default=float(default) if default is not None else None,
            )
            overrides[_code_key(override.code)] = override

        return cls(carve_outs=carve_outs, percentage_overrides=overrides)

    def to_dict(self) -> dict[str, Any]:
        return {
            "career_carve_outs": [
                {
                    "code": item.code,
                    "gender": item.gender,
                    "career_keywords": list(item.career_keywords),
                    "message": item.message,
                }
                for item in self.carve_outs.values()
            ],
            "percentage_overrides": [
                {
                    "code": item.code,
                    "rules": [
                        {"when": {key: list(values) for key, values in rule.when}, "porcentaje": rule.percentage}
                        for rule in item.rules
                    ],
                    "default": item.default,
                }
                for item in self.percentage_overrides.values()
            ],
        }


def _code_key(code: str) -> str:
    return str(code).strip().upper()


def parse_mixed_rules(payload: Iterable[Mapping[str, Any]] | None) -> tuple[MixedDiscountRule, ...]:
    rules: list[MixedDiscountRule] = []
    for item in payload or []:
        when = item.get("when") or {}
        conditions = tuple(
            (str(key), tuple(str(value) for value in _as_sequence(values)))
            for key, values in when.items()
        )
        percentage = item.get("porcentaje", item.get("percentage"))
        if percentage is None:
            raise ValueError("Mixed discount rule is missing 'porcentaje'.")
        rules.append(MixedDiscountRule(when=conditions, percentage=float(percentage)))
    return tuple(rules)


def _as_sequence(value: Any) -> Sequence[Any]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def resolve_mixed_percentage(
    rules: Sequence[MixedDiscountRule],
    default: float | None,
    context: Mapping[str, str],
) -> float | None:
    """First rule whose every non-empty condition matches the context wins."""
    for rule in rules:
        matched = True
        for key, expected in rule.when:
            expected_folded = fold_list(list(expected))
            if not expected_folded:
                continue
            if fold_text(context.get(key)) not in expected_folded:
                matched = False
                break
        if matched:
            return rule.percentage
    return default


DEFAULT_NAMED_EXCEPTIONS = NamedExceptionTable(
    carve_outs={
        "STEM": CareerCarveOut(
            code="STEM",
            gender="Femenino",
            career_keywords=("ingenieria", "informatica", "multimedia"),
            message="Beca STEM solo aplica para Ingeniería Informática Multimedia",
        ),
    },
    percentage_overrides={
        "EXPERIENCIA": PercentageOverride(
            code="EXPERIENCIA",
            rules=(
                MixedDiscountRule(
                    when=(("modalidad_programa", ("Presencial", "Vespertino", "Semipresencial")),),
                    percentage=20.0,
                ),
                MixedDiscountRule(when=(("modalidad_programa", ("Online",)),), percentage=30.0),
            ),
            default=None,
        ),
    },
)
