from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(slots=True)
class RawResponse:
    table: str
    content: bytes
    fetched_at: datetime
    extension: str = "json"


class BaseSource(ABC):
    """One catalog table: fetch raw bytes, then parse them into row mappings."""

    name: str

    @abstractmethod
    def fetch(self, http_client: Any) -> RawResponse:
        """Fetch raw table payload."""

    @abstractmethod
    def parse(self, raw_content: bytes) -> list[dict[str, Any]]:
        """Parse raw payload into source rows (column names untouched)."""

    @staticmethod
    def utcnow() -> datetime:
        return datetime.now(tz=UTC)
