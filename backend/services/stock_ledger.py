"""
Stock mutations for medications and vaccines.

Stock is only ever changed through batches:

- receiving creates a batch,
- consumption decrements ``quantity_remaining`` on one named batch, or across
  the active batches soonest-expiring first (FIFO by expiry),
- corrections and disposals edit a single batch.

Every decrement is a conditional UPDATE (``... WHERE quantity_remaining >= n``)
so two concurrent requests can never oversell a batch; a statement that
matches no row is reported as insufficient stock and the whole operation is
rolled back. Each public function commits its own transaction, writes a
``StockAudit`` row per touched batch and reconciles the parent item's status.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from crud.stock_audit import create_stock_audit
from exceptions import (
    BatchNotFoundError,
    BatchStateError,
    DuplicateBatchError,
    InsufficientStockError,
    ItemNotFoundError,
    ValidationError,
)
from models.batch_mixin import BATCH_ACTIVE, BATCH_EXPIRED
from services.item_families import ItemFamily
from services.legacy_migration import FAR_FUTURE_EXPIRY, carry_legacy_stock, count_batches, generate_batch_number
from services.stock_status import reconcile_item_status
from utils.time_utils import now, parse_date, today

logger = logging.getLogger("stock_ledger")

BATCH_EDITABLE_FIELDS = (
    "batch_number",
    "quantity_received",
    "quantity_remaining",
    "expiry_date",
    "received_date",
    "unit_cost",
    "supplier",
    "notes",
    "lot_number",
    "manufacturer",
    "storage_temperature",
)


@dataclass
class Allocation:
    batch_id: int
    batch_number: str
    quantity: int
    remaining: int


def _positive_quantity(value, field_name: str = "quantity") -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a positive integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field_name} must be a positive integer")
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return value


def _non_negative_cost(value) -> Decimal:
    try:
        cost = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("unitCost must be a number")
    if cost < 0:
        raise ValidationError("unitCost must be non-negative")
    return cost


def get_item_or_raise(db: Session, family: ItemFamily, item_id: int):
    item = db.query(family.item_model).filter(family.item_model.id == item_id).first()
    if item is None:
        raise ItemNotFoundError(family.label, item_id)
    return item


def get_batch_or_raise(db: Session, family: ItemFamily, batch_id: int, item_id: Optional[int] = None):
    query = db.query(family.batch_model).filter(family.batch_model.id == batch_id)
    if item_id is not None:
        query = query.filter(family.batch_model.item_id == item_id)
    batch = query.first()
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


def _ensure_legacy_carried(db: Session, family: ItemFamily, item, changed_by: Optional[str]):
    """Legacy flat stock stays authoritative until the first batch exists."""
    if (item.legacy_stock or 0) > 0 and count_batches(db, family, item.id) == 0:
        batch = carry_legacy_stock(db, family, item, changed_by=changed_by)
        logger.info(f"Carried legacy stock of {family.key} {item.id} into batch {batch.batch_number}")


def _batch_number_taken(db: Session, family: ItemFamily, item_id: int, batch_number: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(family.batch_model.id).filter(
        family.batch_model.item_id == item_id,
        family.batch_model.batch_number == batch_number,
    )
    if exclude_id is not None:
        query = query.filter(family.batch_model.id != exclude_id)
    return query.first() is not None


def _inherited_expiry(item) -> Optional[date]:
    current = today()
    candidates = [
        parse_date(b.expiry_date)
        for b in (item.batches or [])
        if b.status == BATCH_ACTIVE and (b.quantity_remaining or 0) > 0
    ]
    candidates = [d for d in candidates if d is not None and d >= current]
    if candidates:
        return min(candidates)
    legacy = parse_date(item.legacy_expiry_date)
    if legacy is not None and legacy >= current:
        return legacy
    return None


def _decrement(db: Session, family: ItemFamily, batch, quantity: int, changed_by: Optional[str]):
    """Atomically take ``quantity`` from ``batch``; raise if it no longer holds that much."""
    model = family.batch_model
    result = db.execute(
        update(model)
        .where(model.id == batch.id, model.quantity_remaining >= quantity)
        .values(
            quantity_remaining=model.quantity_remaining - quantity,
            updated_at=now(),
            updated_by=changed_by,
        )
        .execution_options(synchronize_session=False)
    )
    db.expire(batch, ["quantity_remaining", "updated_at", "updated_by"])
    if result.rowcount != 1:
        raise InsufficientStockError(quantity, batch.quantity_remaining or 0, batch.id)
    batch.refresh_status()


def receive_batch(db: Session, family: ItemFamily, item_id: int, data: dict, changed_by: Optional[str] = None):
    """
    Record newly received stock as a batch.

    ``data`` uses the model's attribute names. quantity_received must be a
    positive integer and expiry_date is required; quantity_remaining always
    starts equal to quantity_received.
    """
    quantity = _positive_quantity(data.get("quantity_received"), "quantityReceived")
    expiry = parse_date(data.get("expiry_date"))
    if expiry is None:
        raise ValidationError("expiryDate is required")
    batch_number = (data.get("batch_number") or "").strip()
    if not batch_number:
        raise ValidationError("batchNumber is required")

    try:
        item = get_item_or_raise(db, family, item_id)
        # the carried legacy batch may claim the requested number
        _ensure_legacy_carried(db, family, item, changed_by)
        db.flush()
        if _batch_number_taken(db, family, item.id, batch_number):
            raise DuplicateBatchError(batch_number, item.id)

        unit_cost = data.get("unit_cost")
        batch = family.batch_model(
            item_id=item.id,
            batch_number=batch_number,
            quantity_received=quantity,
            quantity_remaining=quantity,
            unit_cost=_non_negative_cost(unit_cost) if unit_cost is not None else (item.unit_cost or 0),
            expiry_date=expiry,
            received_date=parse_date(data.get("received_date")) or today(),
            supplier=data.get("supplier") or item.manufacturer,
            status=BATCH_ACTIVE,
            notes=data.get("notes"),
            created_by=changed_by,
            updated_by=changed_by,
        )
        for extra in ("lot_number", "manufacturer", "storage_temperature"):
            if data.get(extra) is not None and hasattr(family.batch_model, extra):
                setattr(batch, extra, data[extra])
        batch.refresh_status()
        db.add(batch)
        db.flush()

        create_stock_audit(
            db,
            item_type=family.key,
            item_id=item.id,
            batch_id=batch.id,
            change_type="receive",
            change_amount=quantity,
            old_quantity=0,
            new_quantity=quantity,
            changed_by=changed_by,
            note=f"Received batch {batch_number} expiring {expiry.isoformat()}",
        )
        reconcile_item_status(db, item)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(batch)
    logger.info(f"Created batch {batch_number} for {family.key} {item_id}: +{quantity} units (status {batch.status})")
    return batch


def consume_stock(
    db: Session,
    family: ItemFamily,
    item_id: int,
    quantity: int,
    batch_id: Optional[int] = None,
    changed_by: Optional[str] = None,
    note: Optional[str] = None,
) -> List[Allocation]:
    """
    Take ``quantity`` units out of stock.

    With ``batch_id`` only that batch is decremented. Without it, unexpired active batches
    with stock are drained in order of expiry date, then received date, then id.
    Fails with InsufficientStockError, leaving every batch untouched, when the
    targeted stock cannot cover the request.
    """
    quantity = _positive_quantity(quantity)
    model = family.batch_model
    allocations = []
    try:
        item = get_item_or_raise(db, family, item_id)
        _ensure_legacy_carried(db, family, item, changed_by)
        db.flush()

        if batch_id is not None:
            batch = get_batch_or_raise(db, family, batch_id, item_id=item.id)
            if batch.status != BATCH_ACTIVE:
                raise BatchStateError(f"Batch {batch.batch_number} is {batch.status} and cannot be dispensed")
            if batch.is_expired:
                raise BatchStateError(f"Batch {batch.batch_number} expired on {batch.expiry_date} and cannot be dispensed")
            plan = [(batch, quantity)]
            if (batch.quantity_remaining or 0) < quantity:
                raise InsufficientStockError(quantity, batch.quantity_remaining or 0, batch.id)
        else:
            candidates = (
                db.query(model)
                .filter(
                    model.item_id == item.id,
                    model.status == BATCH_ACTIVE,
                    model.quantity_remaining > 0,
                    model.expiry_date >= today(),
                )
                .order_by(model.expiry_date.asc(), model.received_date.asc(), model.id.asc())
                .with_for_update()
                .all()
            )
            available = sum(b.quantity_remaining for b in candidates)
            if available < quantity:
                raise InsufficientStockError(quantity, available)
            plan = []
            outstanding = quantity
            for batch in candidates:
                if outstanding == 0:
                    break
                take = min(outstanding, batch.quantity_remaining)
                plan.append((batch, take))
                outstanding -= take

        for batch, take in plan:
            old_remaining = batch.quantity_remaining
            _decrement(db, family, batch, take, changed_by)
            allocations.append(Allocation(batch.id, batch.batch_number, take, batch.quantity_remaining))
            create_stock_audit(
                db,
                item_type=family.key,
                item_id=item.id,
                batch_id=batch.id,
                change_type="consume",
                change_amount=-take,
                old_quantity=old_remaining,
                new_quantity=batch.quantity_remaining,
                changed_by=changed_by,
                note=note,
            )

        reconcile_item_status(db, item)
        db.commit()
    except InsufficientStockError as e:
        db.rollback()
        logger.warning(f"Rejected consumption of {quantity} from {family.key} {item_id}: {e}")
        raise
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Consumed {quantity} units of {family.key} {item_id} from "
        + ", ".join(f"{a.batch_number} (-{a.quantity})" for a in allocations)
    )
    return allocations


def add_stock(
    db: Session,
    family: ItemFamily,
    item_id: int,
    quantity: int,
    expiry_date: Optional[date] = None,
    changed_by: Optional[str] = None,
    note: Optional[str] = None,
):
    """
    Receive stock that arrived without lot details (the update-stock endpoint).

    A new batch is created under a generated lot number. Its expiry is the one
    given, else the soonest unexpired expiry among the item's active batches,
    else the legacy expiry if not yet past, else a far-future placeholder
    recorded in the notes. An inherited date is never in the past, so the new
    stock always counts towards the item's total.
    """
    quantity = _positive_quantity(quantity)
    item = get_item_or_raise(db, family, item_id)

    expiry = parse_date(expiry_date)
    notes = note
    if expiry is None:
        expiry = _inherited_expiry(item)
    if expiry is None:
        expiry = FAR_FUTURE_EXPIRY
        notes = ((note or "") + " | Expiry date not supplied").strip(" |")

    return receive_batch(
        db,
        family,
        item_id,
        {
            "batch_number": generate_batch_number(family, item.id),
            "quantity_received": quantity,
            "expiry_date": expiry,
            "notes": notes,
        },
        changed_by=changed_by,
    )


def update_batch(db: Session, family: ItemFamily, batch_id: int, changes: dict, changed_by: Optional[str] = None, item_id: Optional[int] = None):
    """Apply a correction edit to a batch and re-derive its and its item's status."""
    try:
        batch = get_batch_or_raise(db, family, batch_id, item_id=item_id)
        old_remaining = batch.quantity_remaining
        updates = {k: v for k, v in changes.items() if k in BATCH_EDITABLE_FIELDS and v is not None}

        if "batch_number" in updates:
            updates["batch_number"] = updates["batch_number"].strip()
            if not updates["batch_number"]:
                raise ValidationError("batchNumber cannot be empty")
            if _batch_number_taken(db, family, batch.item_id, updates["batch_number"], exclude_id=batch.id):
                raise DuplicateBatchError(updates["batch_number"], batch.item_id)
        if "quantity_received" in updates:
            updates["quantity_received"] = _positive_quantity(updates["quantity_received"], "quantityReceived")
        if "unit_cost" in updates:
            updates["unit_cost"] = _non_negative_cost(updates["unit_cost"])
        for date_field in ("expiry_date", "received_date"):
            if date_field in updates:
                parsed = parse_date(updates[date_field])
                if parsed is None:
                    raise ValidationError(f"{date_field} must be a valid date")
                updates[date_field] = parsed

        received = updates.get("quantity_received", batch.quantity_received)
        remaining = updates.get("quantity_remaining", batch.quantity_remaining)
        if isinstance(remaining, bool) or not isinstance(remaining, int) or remaining < 0:
            raise ValidationError("quantityRemaining must be a non-negative integer")
        if remaining > received:
            raise ValidationError("Quantity remaining cannot exceed quantity received")

        for key, value in updates.items():
            if hasattr(family.batch_model, key):
                setattr(batch, key, value)
        batch.updated_by = changed_by
        batch.refresh_status()
        db.flush()

        if batch.quantity_remaining != old_remaining:
            create_stock_audit(
                db,
                item_type=family.key,
                item_id=batch.item_id,
                batch_id=batch.id,
                change_type="correction",
                change_amount=batch.quantity_remaining - old_remaining,
                old_quantity=old_remaining,
                new_quantity=batch.quantity_remaining,
                changed_by=changed_by,
                note=changes.get("notes"),
            )
        reconcile_item_status(db, batch.item)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(batch)
    logger.info(f"Updated {family.key} batch {batch.id} ({batch.batch_number}): {sorted(updates)}")
    return batch


def dispose_batch(db: Session, family: ItemFamily, batch_id: int, changed_by: Optional[str] = None, item_id: Optional[int] = None):
    """Write off an expired batch: remaining goes to zero and the disposal is noted."""
    try:
        batch = get_batch_or_raise(db, family, batch_id, item_id=item_id)
        if not (batch.status == BATCH_EXPIRED or batch.is_expired):
            raise BatchStateError("Cannot dispose non-expired batch. Only expired batches can be disposed")
        if (batch.quantity_remaining or 0) == 0:
            raise BatchStateError(f"Batch {batch.batch_number} has no remaining stock to dispose")

        old_remaining = batch.quantity_remaining
        disposed_on = today().isoformat()
        batch.quantity_remaining = 0
        batch.status = BATCH_EXPIRED
        batch.notes = f"{batch.notes} | Disposed on {disposed_on}" if batch.notes else f"Disposed on {disposed_on}"
        batch.updated_by = changed_by
        db.flush()

        create_stock_audit(
            db,
            item_type=family.key,
            item_id=batch.item_id,
            batch_id=batch.id,
            change_type="dispose",
            change_amount=-old_remaining,
            old_quantity=old_remaining,
            new_quantity=0,
            changed_by=changed_by,
            note="expired",
        )
        reconcile_item_status(db, batch.item)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(batch)
    logger.info(f"Disposed {family.key} batch {batch.id} ({batch.batch_number}), {old_remaining} units written off")
    return batch


def expire_batches(db: Session, family: ItemFamily, as_of: Optional[date] = None) -> int:
    """Mark active batches whose expiry date has passed as expired; returns how many changed."""
    as_of = as_of or today()
    model = family.batch_model
    try:
        stale = (
            db.query(model)
            .filter(model.status == BATCH_ACTIVE, model.expiry_date < as_of)
            .all()
        )
        touched_items = {}
        for batch in stale:
            batch.refresh_status(as_of)
            touched_items[batch.item_id] = batch.item
        db.flush()
        for item in touched_items.values():
            reconcile_item_status(db, item, today=as_of)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if stale:
        logger.info(f"Expired {len(stale)} {family.key} batch(es) across {len(touched_items)} item(s)")
    return len(stale)
