from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path


def write_raw_payload(
    *,
    table: str,
    payload: bytes,
    raw_root: Path,
    extension: str = "json",
    timestamp: datetime | None = None,
) -> Path:
    """Keep the untouched table payload under `<raw_root>/<table>/<UTC stamp>.<ext>`."""
    resolved_ts = timestamp or datetime.now(tz=UTC)
    stamp = resolved_ts.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")

    target_dir = raw_root / table
    target_dir.mkdir(parents=True, exist_ok=True)

    output_path = target_dir / f"{stamp}.{extension.lstrip('.')}"
    output_path.write_bytes(payload)
    return output_path
