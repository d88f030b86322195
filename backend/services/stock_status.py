"""
Item lifecycle status.

``derive_status`` is the single rule deciding what a medication or vaccine is
shown as. It is pure: reads of an item never persist anything. Persisting is
the job of ``reconcile_item_status``, which callers invoke explicitly after a
batch was created, consumed, corrected or disposed.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from utils.time_utils import parse_date, today as current_date

logger = logging.getLogger("stock_status")

STATUS_AVAILABLE = "Available"
STATUS_LOW_STOCK = "Low Stock"
STATUS_OUT_OF_STOCK = "Out of Stock"
STATUS_EXPIRED = "Expired"
ITEM_STATUSES = (STATUS_AVAILABLE, STATUS_LOW_STOCK, STATUS_OUT_OF_STOCK, STATUS_EXPIRED)


def derive_status(total_stock: int, minimum_stock: int, next_expiry_date=None, today: Optional[date] = None) -> str:
    """
    Map an item's stock figures to exactly one status. First match wins:

    1. no stock                      -> Out of Stock
    2. stock <= minimum (inclusive)  -> Low Stock
    3. soonest expiry before today   -> Expired
    4. otherwise                     -> Available

    An unreadable ``next_expiry_date`` counts as no expiry.
    """
    today = today or current_date()
    total_stock = total_stock or 0
    if total_stock <= 0:
        return STATUS_OUT_OF_STOCK
    if total_stock <= (minimum_stock or 0):
        return STATUS_LOW_STOCK
    expiry = parse_date(next_expiry_date)
    if expiry is not None and expiry < today:
        return STATUS_EXPIRED
    return STATUS_AVAILABLE


def reconcile_item_status(db: Session, item, today: Optional[date] = None) -> bool:
    """
    Persist the derived status of ``item`` if it differs from the stored one.

    Pending batch changes are flushed first so the figures are current. The
    write is a plain UPDATE of the status column only. The caller owns the
    transaction; this function never commits. Returns True when a write was issued.
    """
    db.flush()
    db.expire(item, ["batches"])
    new_status = derive_status(item.total_stock, item.minimum_stock, item.next_expiry_date, today=today)
    if item.status == new_status:
        return False

    model = type(item)
    db.execute(
        update(model)
        .where(model.id == item.id)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    logger.info(f"{model.__name__} {item.id} status changed from '{item.status}' to '{new_status}'")
    # keep the in-memory object in line without triggering a flush of it
    db.expire(item, ["status"])
    return True
