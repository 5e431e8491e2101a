from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from simulador_becas.ingest.base import BaseSource, RawResponse
from simulador_becas.ingest.cache import write_raw_payload
from simulador_becas.ingest.http import PoliteHttpClient, supabase_headers
from simulador_becas.normalize.careers import CareerLookup
from simulador_becas.normalize.catalog import load_offers, load_state_offers
from simulador_becas.normalize.schema import ScholarshipOffer

logger = logging.getLogger(__name__)

REST_PATH = "/rest/v1"


class SupabaseTableSource(BaseSource):
    """GET `<base_url>/rest/v1/<table>` with PostgREST filter/order params."""

    def __init__(
        self,
        base_url: str,
        table: str,
        *,
        filters: Mapping[str, str] | None = None,
        order: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.name = table
        self.filters = dict(filters or {})
        self.order = order

    @property
    def url(self) -> str:
        return f"{self.base_url}{REST_PATH}/{self.name}"

    def params(self) -> dict[str, str]:
        params = {"select": "*", **self.filters}
        if self.order:
            params["order"] = self.order
        return params

    def fetch(self, http_client: Any) -> RawResponse:
        content = http_client.get_bytes(self.url, params=self.params())
        return RawResponse(table=self.name, content=content, fetched_at=self.utcnow())

    def parse(self, raw_content: bytes) -> list[dict[str, Any]]:
        payload = json.loads(raw_content.decode("utf-8"))
        if not isinstance(payload, list):
            raise ValueError(f"Table '{self.name}' returned {type(payload).__name__}, expected a list of rows.")
        rows = [row for row in payload if isinstance(row, dict)]
        if len(rows) != len(payload):
            logger.warning("Table %s: dropped %d non-object rows.", self.name, len(payload) - len(rows))
        return rows


def becas_uniacc_source(base_url: str) -> SupabaseTableSource:
    return SupabaseTableSource(base_url, "becas_uniacc", filters={"activa": "eq.true"}, order="prioridad.asc")


def becas_estado_source(base_url: str) -> SupabaseTableSource:
    return SupabaseTableSource(base_url, "becas_estado", order="id.asc")


def carreras_source(base_url: str) -> SupabaseTableSource:
    return SupabaseTableSource(base_url, "carreras", order="id.asc")


@dataclass(slots=True)
class CatalogTables:
    offers: list[ScholarshipOffer]
    state_offers: list[ScholarshipOffer]
    careers: CareerLookup
    rows: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    raw_paths: dict[str, Path] = field(default_factory=dict)


@dataclass(slots=True)
class SupabaseCatalogSource:
    """Reads the three catalog tables and maps them onto engine types."""

    base_url: str
    api_key: str

    def sources(self) -> list[SupabaseTableSource]:
        return [
            becas_uniacc_source(self.base_url),
            becas_estado_source(self.base_url),
            carreras_source(self.base_url),
        ]

    def fetch_rows(
        self,
        http_client: Any,
        *,
        raw_root: Path | None = None,
    ) -> tuple[dict[str, list[dict[str, Any]]], dict[str, Path]]:
        rows: dict[str, list[dict[str, Any]]] = {}
        raw_paths: dict[str, Path] = {}
        for source in self.sources():
            raw_response = source.fetch(http_client)
            if raw_root is not None:
                raw_paths[source.name] = write_raw_payload(
                    table=source.name,
                    payload=raw_response.content,
                    raw_root=raw_root,
                    extension=raw_response.extension,
                    timestamp=raw_response.fetched_at,
                )
            rows[source.name] = source.parse(raw_response.content)
            logger.info("Table=%s rows=%d", source.name, len(rows[source.name]))
        return rows, raw_paths

    def fetch_catalog(
        self,
        http_client: Any | None = None,
        *,
        raw_root: Path | None = None,
    ) -> CatalogTables:
        owns_client = http_client is None
        client = http_client or self.client()
        try:
            rows, raw_paths = self.fetch_rows(client, raw_root=raw_root)
        finally:
            if owns_client:
                client.close()

        return CatalogTables(
            offers=load_offers(rows.get("becas_uniacc", [])),
            state_offers=load_state_offers(rows.get("becas_estado", [])),
            careers=CareerLookup.from_records(rows.get("carreras", [])),
            rows=rows,
            raw_paths=raw_paths,
        )

    def client(self, **kwargs: Any) -> PoliteHttpClient:
        return PoliteHttpClient(default_headers=supabase_headers(self.api_key), **kwargs)
