from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR / "src") not in sys.path:
    sys.path.insert(0, str(ROOT_DIR / "src"))

from simulador_becas.eval.catalog_quality import audit_catalog
from simulador_becas.io.catalog_io import get_latest_snapshot_path, load_catalog, write_json_atomic

logger = logging.getLogger("audit_catalog")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Report catalog anomalies that stacking tolerates.")
    parser.add_argument("--catalog", type=Path, default=None)
    parser.add_argument("--processed-dir", type=Path, default=ROOT_DIR / "data" / "processed")
    parser.add_argument("--today", type=str, default=None, help="Audit date YYYY-MM-DD.")
    parser.add_argument("--output", type=Path, default=None)
    parser.add_argument("--fail-on-warnings", action="store_true")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    catalog_path = args.catalog or get_latest_snapshot_path(args.processed_dir)
    if catalog_path is None:
        raise SystemExit(f"No catalog snapshot found in '{args.processed_dir}'. Pass --catalog.")
    today = datetime.strptime(args.today, "%Y-%m-%d").date() if args.today else None

    audit = audit_catalog(load_catalog(catalog_path), today=today)
    logger.info("Audited %d offers from %s", audit.offer_count, catalog_path)
    if args.output is not None:
        write_json_atomic(audit.to_dict(), args.output)
        print(f"Wrote audit: {args.output}")

    warnings = audit.warnings()
    print(f"Catalog clean: {audit.is_clean} ({len(warnings)} warnings)")
    for message in warnings:
        print(f"- {message}")
    return 1 if args.fail_on_warnings and not audit.is_clean else 0


if __name__ == "__main__":
    raise SystemExit(main())
