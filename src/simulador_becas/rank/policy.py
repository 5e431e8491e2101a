from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from simulador_becas.normalize.schema import OfferCategory


class StackingPolicy(str, Enum):
    SINGLE_BEST = "single_best"
    STACK_ALL_COMPATIBLE = "stack_all_compatible"


class PercentageBasis(str, Enum):
    RUNNING_BALANCE = "running_balance"
    ORIGINAL_BASE = "original_base"


class ReasonPolicy(str, Enum):
    FIRST_FAILURE = "first_failure"
    LAST_FAILURE = "last_failure"


DEFAULT_CATEGORY_ORDER: tuple[str, ...] = (
    OfferCategory.BECA.value,
    OfferCategory.FINANCIAMIENTO.value,
    OfferCategory.FINANCIERO.value,
)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """`category_order` breaks priority ties; categories not listed sort last."""

    stacking_policy: StackingPolicy = StackingPolicy.STACK_ALL_COMPATIBLE
    percentage_basis: PercentageBasis = PercentageBasis.RUNNING_BALANCE
    reason_policy: ReasonPolicy = ReasonPolicy.LAST_FAILURE
    default_program_years: float = 4.0
    category_order: tuple[str, ...] = DEFAULT_CATEGORY_ORDER

    def __post_init__(self) -> None:
        if not isinstance(self.stacking_policy, StackingPolicy):
            raise ValueError(f"Unknown stacking policy '{self.stacking_policy}'.")
        if not isinstance(self.percentage_basis, PercentageBasis):
            raise ValueError(f"Unknown percentage basis '{self.percentage_basis}'.")
        if not isinstance(self.reason_policy, ReasonPolicy):
            raise ValueError(f"Unknown reason policy '{self.reason_policy}'.")

        years = float(self.default_program_years)
        if not math.isfinite(years) or years <= 0.0:
            raise ValueError("Engine config 'default_program_years' must be a positive number.")

        if len(set(self.category_order)) != len(self.category_order):
            raise ValueError("Engine config 'category_order' must not repeat categories.")

    @classmethod
    def baseline(cls) -> EngineConfig:
        return cls()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> EngineConfig:
        values = payload or {}
        baseline = cls.baseline()
        return cls(
            stacking_policy=_parse_enum(
                StackingPolicy, values.get("stacking_policy", baseline.stacking_policy), "stacking_policy"
            ),
            percentage_basis=_parse_enum(
                PercentageBasis, values.get("percentage_basis", baseline.percentage_basis), "percentage_basis"
            ),
            reason_policy=_parse_enum(
                ReasonPolicy, values.get("reason_policy", baseline.reason_policy), "reason_policy"
            ),
            default_program_years=float(values.get("default_program_years", baseline.default_program_years)),
            category_order=tuple(
                str(item).strip().upper() for item in values.get("category_order", baseline.category_order)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stacking_policy": self.stacking_policy.value,
            "percentage_basis": self.percentage_basis.value,
            "reason_policy": self.reason_policy.value,
            "default_program_years": self.default_program_years,
            "category_order": list(self.category_order),
        }

    def category_rank(self, category: OfferCategory | str | None) -> int:
        if category is None:
            return len(self.category_order)
        key = category.value if isinstance(category, OfferCategory) else str(category).upper()
        try:
            return self.category_order.index(key)
        except ValueError:
            return len(self.category_order)


def _parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Engine config '{field_name}' must be one of: {allowed}.") from None


def load_engine_config(path: str | Path | None) -> EngineConfig:
    if path is None:
        return EngineConfig.baseline()
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Engine config not found: {config_path}")
    payload = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Engine config must be a JSON object.")
    return EngineConfig.from_mapping(payload)
