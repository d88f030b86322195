from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
import logging

from database import get_db
from services import legacy_migration, stock_ledger
from services.item_families import FAMILIES, get_family
from utils.auth_utils import get_user_identifier

router = APIRouter(prefix="/api/admin", tags=["Admin"])
logger = logging.getLogger("admin_migration")


def _families(family: Optional[str]):
    if family is None or family.strip().lower() == "all":
        return list(FAMILIES.values())
    return [get_family(family)]


@router.get("/batch-migration/status")
def read_batch_migration_status(db: Session = Depends(get_db)):
    """How much legacy stock is already represented by batches, per family."""
    return {family.key: legacy_migration.batch_coverage(db, family) for family in FAMILIES.values()}


@router.post("/batch-migration")
def run_batch_migration(
    family: Optional[str] = "all",
    execute: bool = False,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    """
    Carry legacy flat stock into batches. Nothing is written unless
    ``execute=true``; items that already own a batch are skipped.
    """
    reports = {}
    for item_family in _families(family):
        report = legacy_migration.migrate_legacy_stock(db, item_family, execute=execute, changed_by=changed_by)
        reports[item_family.key] = report.to_dict()
    logger.info(f"Batch migration ({'execute' if execute else 'dry run'}) requested by {changed_by}")
    return reports


@router.post("/expire-batches")
def expire_batches(db: Session = Depends(get_db)):
    """Mark active batches past their expiry date as expired and refresh item statuses."""
    return {family.key: stock_ledger.expire_batches(db, family) for family in FAMILIES.values()}
