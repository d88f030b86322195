#!/usr/bin/env python3
"""
Import the pre-database JSON files (medications.json, vaccines.json) into the
item tables, or write fresh JSON snapshots from the database.

Usage examples:
  python scripts/import_legacy_json.py import --family all
  python scripts/import_legacy_json.py import --family medication --data-dir /srv/old/data
  python scripts/import_legacy_json.py export --data-dir exports/

Import only fills item rows (stock lands in the legacy columns); run
scripts/migrate_legacy_batches.py afterwards to carry that stock into batches.
Items whose name already exists are left untouched.
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add the parent directory to sys.path to allow imports from backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import models  # noqa: F401
from database import Base, SessionLocal, engine
from services.item_families import FAMILIES
from services.legacy_store import export_snapshot, import_legacy_items, legacy_file_path, read_legacy_file

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("import_legacy_json")


def main():
    parser = argparse.ArgumentParser(description="Import or export legacy inventory JSON files")
    parser.add_argument("action", choices=["import", "export"])
    parser.add_argument("--family", choices=["medication", "vaccine", "all"], default="all")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory holding the JSON files")

    args = parser.parse_args()
    families = list(FAMILIES.values()) if args.family == "all" else [FAMILIES[args.family]]

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        for family in families:
            if args.action == "export":
                export_snapshot(db, family, data_dir=args.data_dir)
                continue
            path = legacy_file_path(family, args.data_dir)
            if not os.path.exists(path):
                logger.warning(f"{path} not found, skipping {family.plural}")
                continue
            result = import_legacy_items(db, family, read_legacy_file(path), changed_by="legacy-import")
            logger.info(f"{family.plural}: {result}")
    finally:
        db.close()


if __name__ == '__main__':
    main()
