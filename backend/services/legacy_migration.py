"""
Carry pre-batch stock into the batch model.

Before batch tracking, an item's stock lived in flat columns on the item row
(``units_in_stock`` / ``doses_in_stock``, ``batch_number``, ``expiry_date``).
For every item that still has such stock but no batch at all, this module
synthesizes exactly one batch holding the same quantity, lot number and
expiry so nothing is lost when batch totals become authoritative.

The procedure is safe to re-run: an item that owns any batch is skipped.
It is dry-run unless ``execute=True`` is passed.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from crud.stock_audit import create_stock_audit
from models.batch_mixin import BATCH_ACTIVE, BATCH_EXPIRED
from services.item_families import ItemFamily
from services.stock_status import reconcile_item_status
from utils.time_utils import parse_date, today

logger = logging.getLogger("legacy_migration")

FAR_FUTURE_EXPIRY = date(2099, 12, 31)
MIGRATION_USER = "legacy-migration"

RESULT_MIGRATED = "migrated"
RESULT_SKIPPED = "skipped"
RESULT_ERROR = "error"


def generate_batch_number(family: ItemFamily, item_id: int) -> str:
    """Placeholder lot number: <PREFIX>-<itemId>-<epoch millis>."""
    return f"{family.batch_prefix}-{item_id}-{int(time.time() * 1000)}"


def build_legacy_batch(family: ItemFamily, item, run_date: Optional[date] = None):
    """
    Return an unsaved batch equivalent to the item's legacy flat stock.

    Only ``item_id`` is set (not the relationship) so a dry run never attaches
    the object to the session.
    """
    run_date = run_date or today()
    quantity = int(item.legacy_stock or 0)
    expiry = parse_date(item.legacy_expiry_date) or FAR_FUTURE_EXPIRY
    batch_number = (item.legacy_batch_number or "").strip() or generate_batch_number(family, item.id)

    batch = family.batch_model(
        item_id=item.id,
        batch_number=batch_number,
        quantity_received=quantity,
        quantity_remaining=quantity,
        unit_cost=item.unit_cost or 0,
        expiry_date=expiry,
        received_date=run_date,
        supplier=item.manufacturer,
        status=BATCH_EXPIRED if expiry < run_date else BATCH_ACTIVE,
        notes=f"Created from legacy {family.key} stock data during batch migration on {run_date.isoformat()}",
        created_by=MIGRATION_USER,
    )
    return batch


@dataclass
class MigrationOutcome:
    item_id: int
    item_name: str
    result: str
    quantity: Optional[int] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    batch_status: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "itemName": self.item_name,
            "result": self.result,
            "quantity": self.quantity,
            "batchNumber": self.batch_number,
            "expiryDate": self.expiry_date.isoformat() if self.expiry_date else None,
            "batchStatus": self.batch_status,
            "reason": self.reason,
        }


@dataclass
class MigrationReport:
    family: str
    dry_run: bool
    run_date: date
    outcomes: List[MigrationOutcome] = field(default_factory=list)

    def _count(self, result: str) -> int:
        return len([o for o in self.outcomes if o.result == result])

    @property
    def migrated_count(self) -> int:
        return self._count(RESULT_MIGRATED)

    @property
    def skipped_count(self) -> int:
        return self._count(RESULT_SKIPPED)

    @property
    def error_count(self) -> int:
        return self._count(RESULT_ERROR)

    @property
    def errors(self) -> List[MigrationOutcome]:
        return [o for o in self.outcomes if o.result == RESULT_ERROR]

    def to_dict(self) -> dict:
        return {
            "family": self.family,
            "dryRun": self.dry_run,
            "runDate": self.run_date.isoformat(),
            "processed": len(self.outcomes),
            "migrated": self.migrated_count,
            "skipped": self.skipped_count,
            "errors": self.error_count,
            "totalQuantity": sum(o.quantity or 0 for o in self.outcomes if o.result == RESULT_MIGRATED),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def items_with_legacy_stock(db: Session, family: ItemFamily):
    model = family.item_model
    return db.query(model).filter(model.legacy_stock > 0).order_by(model.id).all()


def count_batches(db: Session, family: ItemFamily, item_id: int) -> int:
    batch_model = family.batch_model
    return db.query(func.count(batch_model.id)).filter(batch_model.item_id == item_id).scalar() or 0


def carry_legacy_stock(db: Session, family: ItemFamily, item, run_date: Optional[date] = None, changed_by: Optional[str] = None):
    """
    Add the legacy batch for ``item`` to the current transaction (no commit).

    Used by the migration and by stock operations that touch an item whose
    legacy stock was never migrated.
    """
    batch = build_legacy_batch(family, item, run_date)
    db.add(batch)
    db.flush()
    create_stock_audit(
        db,
        item_type=family.key,
        item_id=item.id,
        batch_id=batch.id,
        change_type="migration",
        change_amount=batch.quantity_received,
        old_quantity=0,
        new_quantity=batch.quantity_received,
        changed_by=changed_by or MIGRATION_USER,
        note=f"Legacy stock moved into batch {batch.batch_number}",
    )
    return batch


def migrate_legacy_stock(
    db: Session,
    family: ItemFamily,
    execute: bool = False,
    run_date: Optional[date] = None,
    changed_by: Optional[str] = None,
) -> MigrationReport:
    """
    Synthesize one batch per item that has legacy stock and no batches.

    Each item is committed on its own; a failing item is rolled back, recorded
    in the report and the run continues with the next one.
    """
    run_date = run_date or today()
    report = MigrationReport(family=family.key, dry_run=not execute, run_date=run_date)
    mode = "EXECUTE" if execute else "DRY-RUN"
    logger.info(f"[{mode}] Starting legacy {family.key} batch migration")

    candidates = [(item.id, item.name) for item in items_with_legacy_stock(db, family)]
    for item_id, item_name in candidates:
        try:
            item = db.get(family.item_model, item_id)
            existing = count_batches(db, family, item_id)
            if existing:
                report.outcomes.append(MigrationOutcome(
                    item_id=item_id,
                    item_name=item_name,
                    result=RESULT_SKIPPED,
                    reason=f"{existing} batch(es) already exist",
                ))
                logger.info(f"[{mode}] Skipped {family.key} {item_id} '{item_name}': {existing} batch(es) already exist")
                continue

            if execute:
                batch = carry_legacy_stock(db, family, item, run_date=run_date, changed_by=changed_by)
                reconcile_item_status(db, item)
                db.commit()
            else:
                batch = build_legacy_batch(family, item, run_date)

            report.outcomes.append(MigrationOutcome(
                item_id=item_id,
                item_name=item_name,
                result=RESULT_MIGRATED,
                quantity=batch.quantity_received,
                batch_number=batch.batch_number,
                expiry_date=batch.expiry_date,
                batch_status=batch.status,
            ))
            logger.info(
                f"[{mode}] {'Created' if execute else 'Would create'} batch {batch.batch_number} "
                f"for {family.key} {item_id} '{item_name}': {batch.quantity_received} units, expiry {batch.expiry_date}"
            )
        except Exception as e:
            db.rollback()
            logger.exception(f"[{mode}] Failed to migrate {family.key} {item_id} '{item_name}': {e}")
            report.outcomes.append(MigrationOutcome(
                item_id=item_id,
                item_name=item_name,
                result=RESULT_ERROR,
                reason=str(e),
            ))

    logger.info(
        f"[{mode}] Legacy {family.key} migration finished: {report.migrated_count} migrated, "
        f"{report.skipped_count} skipped, {report.error_count} errors"
    )
    return report


def batch_coverage(db: Session, family: ItemFamily) -> dict:
    """Compare legacy stock with batch stock for every item that has legacy stock."""
    details = []
    for item in items_with_legacy_stock(db, family):
        batches = list(item.batches)
        batch_stock = sum(b.quantity_remaining for b in batches)
        details.append({
            "itemId": item.id,
            "itemName": item.name,
            "legacyStock": item.legacy_stock,
            "batchCount": len(batches),
            "batchStock": batch_stock,
            "hasBatches": bool(batches),
            "stockMatch": item.legacy_stock == batch_stock,
        })

    return {
        "family": family.key,
        "totalItems": db.query(func.count(family.item_model.id)).scalar() or 0,
        "itemsWithLegacyStock": len(details),
        "itemsWithBatches": len([d for d in details if d["hasBatches"]]),
        "itemsWithoutBatches": len([d for d in details if not d["hasBatches"]]),
        "stockMatches": len([d for d in details if d["stockMatch"]]),
        "stockMismatches": len([d for d in details if d["hasBatches"] and not d["stockMatch"]]),
        "details": details,
    }
