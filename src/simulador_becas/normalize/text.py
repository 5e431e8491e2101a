from __future__ import annotations

import unicodedata
from typing import Any

import pandas as pd


def fold_text(value: Any) -> str | None:
    """Lowercase, trim and strip accents so "Ingeniería" matches "ingenieria"."""
    if value is None:
        return None
    if not isinstance(value, str):
        if isinstance(value, float) and pd.isna(value):
            return None
        value = str(value)
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    folded = "".join(char for char in decomposed if not unicodedata.combining(char))
    return folded or None


def fold_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [item for item in (fold_text(v) for v in value) if item]
    if isinstance(value, str):
        folded = fold_text(value)
        return [folded] if folded else []
    return []
