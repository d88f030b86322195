#!/usr/bin/env python3
"""
Carry legacy flat stock (units_in_stock / doses_in_stock) into batches.

Usage examples:
  python scripts/migrate_legacy_batches.py                       # dry run, both families
  python scripts/migrate_legacy_batches.py --family vaccine
  python scripts/migrate_legacy_batches.py --execute --delay 10 --report migration.json

Without --execute nothing is written: the script reports what it would create.
Items that already own at least one batch are always skipped, so the script can
be re-run safely. It must not run concurrently with itself.
"""

import argparse
import json
import logging
import os
import sys
import time

from dotenv import load_dotenv

load_dotenv()

# Add the parent directory to sys.path to allow imports from backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import models  # noqa: F401
from database import Base, SessionLocal, engine
from services.item_families import FAMILIES, get_family
from services.legacy_migration import migrate_legacy_stock

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("migrate_legacy_batches")


def countdown(seconds: int):
    """Give the operator a window to abort with Ctrl+C before anything is written."""
    for remaining in range(seconds, 0, -1):
        logger.warning(f"EXECUTE mode: writing in {remaining}s (Ctrl+C to cancel)")
        time.sleep(1)


def run(family_names, execute: bool = False, report_path: str = None) -> int:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    reports = {}
    try:
        for name in family_names:
            report = migrate_legacy_stock(db, get_family(name), execute=execute)
            reports[name] = report.to_dict()
            for error in report.errors:
                logger.error(f"  {name} {error.item_id} '{error.item_name}': {error.reason}")
    finally:
        db.close()

    for name, data in reports.items():
        logger.info(
            f"{name}: processed {data['processed']}, migrated {data['migrated']}, "
            f"skipped {data['skipped']}, errors {data['errors']}, units carried {data['totalQuantity']}"
        )
    if report_path:
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(reports, f, indent=2)
        logger.info(f"Report written to {report_path}")

    if not execute:
        logger.info("Dry run only. Re-run with --execute to create the batches.")
    return 1 if any(data["errors"] for data in reports.values()) else 0


def main():
    parser = argparse.ArgumentParser(description="Migrate legacy flat stock into medication/vaccine batches")
    parser.add_argument("--family", choices=["medication", "vaccine", "all"], default="all")
    parser.add_argument("--execute", action="store_true", help="Write the batches (default is a dry run)")
    parser.add_argument("--delay", type=int, default=5, help="Seconds to wait before writing in execute mode")
    parser.add_argument("--report", type=str, default=None, help="Write the JSON report to this path")

    args = parser.parse_args()
    family_names = list(FAMILIES) if args.family == "all" else [args.family]

    logger.info(f"Running legacy batch migration for {family_names} execute={args.execute}")
    if args.execute and args.delay > 0:
        try:
            countdown(args.delay)
        except KeyboardInterrupt:
            logger.info("Cancelled, nothing was written.")
            return 130

    return run(family_names, execute=args.execute, report_path=args.report)


if __name__ == '__main__':
    sys.exit(main())
