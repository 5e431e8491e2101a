from __future__ import annotations

import json
from pathlib import Path

import pytest

from simulador_becas.eval.golden_applicants import (
    reference_career_rows,
    reference_catalog_rows,
    reference_state_rows,
)
from simulador_becas.ingest.http import supabase_headers
from simulador_becas.ingest.registry import register_sources
from simulador_becas.ingest.supabase import SupabaseCatalogSource, SupabaseTableSource

BASE_URL = "https://example.supabase.co/"


class _FakeClient:
    def __init__(self, tables: dict[str, object]) -> None:
        self.tables = tables
        self.calls: list[tuple[str, dict]] = []
        self.closed = False

    def get_bytes(self, url: str, *, params: dict | None = None) -> bytes:
        self.calls.append((url, dict(params or {})))
        table = url.rsplit("/", 1)[-1]
        return json.dumps(self.tables[table]).encode("utf-8")

    def close(self) -> None:
        self.closed = True


def _client() -> _FakeClient:
    return _FakeClient(
        {
            "becas_uniacc": reference_catalog_rows(),
            "becas_estado": reference_state_rows(),
            "carreras": reference_career_rows(),
        }
    )


def test_table_source_builds_postgrest_request() -> None:
    source = SupabaseTableSource(BASE_URL, "becas_uniacc", filters={"activa": "eq.true"}, order="prioridad.asc")

    assert source.url == "https://example.supabase.co/rest/v1/becas_uniacc"
    assert source.params() == {"select": "*", "activa": "eq.true", "order": "prioridad.asc"}


def test_registry_lists_catalog_tables() -> None:
    assert [source.name for source in register_sources(BASE_URL)] == ["becas_uniacc", "becas_estado", "carreras"]


def test_parse_rejects_non_list_payload() -> None:
    source = SupabaseTableSource(BASE_URL, "carreras")

    with pytest.raises(ValueError, match="expected a list"):
        source.parse(b'{"message": "JWT expired"}')
    assert source.parse(b'[{"id": 1}, "junk"]') == [{"id": 1}]


def test_fetch_catalog_maps_tables_and_caches_raw_payloads(tmp_path: Path) -> None:
    client = _client()
    catalog_source = SupabaseCatalogSource(BASE_URL, "anon-key")

    tables = catalog_source.fetch_catalog(client, raw_root=tmp_path)

    assert [offer.code for offer in tables.offers][:2] == ["EXCELENCIA", "MERITO"]
    assert [offer.code for offer in tables.state_offers] == ["BEA", "BJGM"]
    assert all(offer.requires_state_scholarship for offer in tables.state_offers)
    assert len(tables.careers) == 4
    assert set(tables.raw_paths) == {"becas_uniacc", "becas_estado", "carreras"}
    assert all(path.exists() for path in tables.raw_paths.values())
    assert client.calls[0][1]["activa"] == "eq.true"
    assert client.closed is False


def test_supabase_headers_carry_key() -> None:
    headers = supabase_headers("secret")

    assert headers["apikey"] == "secret"
    assert headers["Authorization"] == "Bearer secret"
