import logging
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from crud.audit_log import create_audit_log
from exceptions import ItemInUseError, ItemNotFoundError
from schemas.audit_log import AuditLogCreate
from services.item_families import ItemFamily
from services.stock_status import (
    STATUS_AVAILABLE,
    STATUS_EXPIRED,
    STATUS_LOW_STOCK,
    STATUS_OUT_OF_STOCK,
    reconcile_item_status,
)
from utils import sqlalchemy_to_dict

logger = logging.getLogger("inventory_items")


def get_item(db: Session, family: ItemFamily, item_id: int):
    model = family.item_model
    return (
        db.query(model)
        .options(selectinload(model.batches))
        .filter(model.id == item_id)
        .first()
    )


def get_item_by_name(db: Session, family: ItemFamily, name: str):
    model = family.item_model
    return db.query(model).filter(func.lower(model.name) == name.strip().lower()).first()


def get_items(
    db: Session,
    family: ItemFamily,
    skip: int = 0,
    limit: int = 100,
    category: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
):
    model = family.item_model
    query = db.query(model).options(selectinload(model.batches))
    if not include_inactive:
        query = query.filter(model.is_active.is_(True))
    if category:
        query = query.filter(model.category == category)
    if search:
        query = query.filter(model.name.ilike(f"%{search}%"))
    return query.order_by(model.name.asc(), model.id.asc()).offset(skip).limit(limit).all()


def create_item(db: Session, family: ItemFamily, data: dict, changed_by: Optional[str] = None):
    db_item = family.item_model(**data, created_by=changed_by, updated_by=changed_by)
    try:
        db.add(db_item)
        db.flush()
        # a new item has no batches yet
        reconcile_item_status(db, db_item)
        create_audit_log(db=db, log_entry=AuditLogCreate(
            table_name=family.item_model.__tablename__,
            record_id=db_item.id,
            changed_by=changed_by,
            action='INSERT',
            old_values=None,
            new_values=sqlalchemy_to_dict(db_item),
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(db_item)
    return db_item


def update_item(db: Session, family: ItemFamily, item_id: int, data: dict, changed_by: Optional[str] = None):
    db_item = get_item(db, family, item_id)
    if db_item is None:
        raise ItemNotFoundError(family.label, item_id)
    try:
        old_values = sqlalchemy_to_dict(db_item)
        for key, value in data.items():
            if value is not None:
                setattr(db_item, key, value)
        db_item.updated_by = changed_by
        db.flush()
        # minimum_stock may have moved the low stock threshold
        reconcile_item_status(db, db_item)
        db.refresh(db_item)
        create_audit_log(db=db, log_entry=AuditLogCreate(
            table_name=family.item_model.__tablename__,
            record_id=item_id,
            changed_by=changed_by,
            action='UPDATE',
            old_values=old_values,
            new_values=sqlalchemy_to_dict(db_item),
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(db_item)
    return db_item


def delete_item(db: Session, family: ItemFamily, item_id: int, changed_by: Optional[str] = None):
    """Delete an item. Items that own batches are kept so stock history stays intact."""
    db_item = get_item(db, family, item_id)
    if db_item is None:
        raise ItemNotFoundError(family.label, item_id)
    if db_item.batches:
        raise ItemInUseError(
            f"{family.label} '{db_item.name}' has {len(db_item.batches)} batch(es) and cannot be deleted"
        )

    old_values = sqlalchemy_to_dict(db_item)
    try:
        db.delete(db_item)
        db.flush()
        create_audit_log(db=db, log_entry=AuditLogCreate(
            table_name=family.item_model.__tablename__,
            record_id=item_id,
            changed_by=changed_by,
            action='DELETE',
            old_values=old_values,
            new_values=None,
        ))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ItemInUseError(f"{family.label} {item_id} is still referenced and cannot be deleted")
    except Exception:
        db.rollback()
        raise
    logger.info(f"{family.label} {item_id} '{old_values['name']}' deleted by {changed_by}")
    return True


def get_family_summary(db: Session, family: ItemFamily) -> dict:
    """Status counts for one family, computed from batches rather than the stored status."""
    model = family.item_model
    items = (
        db.query(model)
        .options(selectinload(model.batches))
        .filter(model.is_active.is_(True))
        .all()
    )
    summary = {
        "total": len(items),
        "available": 0,
        "low_stock": 0,
        "out_of_stock": 0,
        "expired": 0,
        "expiring": 0,
        "total_units": 0,
    }
    keys = {
        STATUS_AVAILABLE: "available",
        STATUS_LOW_STOCK: "low_stock",
        STATUS_OUT_OF_STOCK: "out_of_stock",
        STATUS_EXPIRED: "expired",
    }
    for item in items:
        summary[keys[item.derived_status]] += 1
        summary["expiring"] += item.expiring_batches_count
        summary["total_units"] += item.total_stock
    return summary
