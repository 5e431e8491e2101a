from __future__ import annotations

from .base import BaseSource, RawResponse
from .cache import write_raw_payload
from .http import PoliteHttpClient, supabase_headers
from .registry import register_sources
from .supabase import CatalogTables, SupabaseCatalogSource, SupabaseTableSource

__all__ = [
    "BaseSource",
    "CatalogTables",
    "PoliteHttpClient",
    "RawResponse",
    "SupabaseCatalogSource",
    "SupabaseTableSource",
    "register_sources",
    "supabase_headers",
    "write_raw_payload",
]
