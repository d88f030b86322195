from sqlalchemy.orm import Session
from models.stock_audit import StockAudit
from typing import Optional
from datetime import date, datetime, time


def get_stock_audits(
    db: Session,
    item_type: str,
    item_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
):
    query = db.query(StockAudit).filter(
        StockAudit.item_type == item_type,
        StockAudit.item_id == item_id
    )

    if start_date:
        query = query.filter(StockAudit.timestamp >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(StockAudit.timestamp <= datetime.combine(end_date, time.max))

    return query.order_by(StockAudit.timestamp.desc(), StockAudit.id.desc()).all()


def create_stock_audit(
    db: Session,
    item_type: str,
    item_id: int,
    change_type: str,
    change_amount: int,
    old_quantity: int,
    new_quantity: int,
    batch_id: Optional[int] = None,
    changed_by: Optional[str] = None,
    note: Optional[str] = None
):
    """Record a stock movement inside the caller's transaction (no commit)."""
    audit = StockAudit(
        item_type=item_type,
        item_id=item_id,
        batch_id=batch_id,
        change_type=change_type,
        change_amount=change_amount,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        changed_by=changed_by,
        note=note,
    )
    db.add(audit)
    return audit
