"""I/O utilities for catalog files and snapshots."""

from simulador_becas.io.catalog_io import get_latest_snapshot_path, load_catalog, load_catalog_df

__all__ = ["get_latest_snapshot_path", "load_catalog", "load_catalog_df"]
