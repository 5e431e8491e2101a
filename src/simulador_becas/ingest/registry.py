from __future__ import annotations

from .base import BaseSource
from .supabase import becas_estado_source, becas_uniacc_source, carreras_source


def register_sources(base_url: str) -> list[BaseSource]:
    return [
        becas_uniacc_source(base_url),
        becas_estado_source(base_url),
        carreras_source(base_url),
    ]
