from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session, joinedload
import settings
from models.batch_mixin import BATCH_ACTIVE, BATCH_DEPLETED
from services.item_families import ItemFamily
from utils.time_utils import today


def get_batch(db: Session, family: ItemFamily, batch_id: int):
    return db.query(family.batch_model).filter(family.batch_model.id == batch_id).first()


def get_batches(db: Session, family: ItemFamily, item_id: int, include_depleted: bool = True):
    """Batches of one item, soonest expiry first."""
    model = family.batch_model
    query = db.query(model).filter(model.item_id == item_id)
    if not include_depleted:
        query = query.filter(model.status != BATCH_DEPLETED)
    return query.order_by(model.expiry_date.asc(), model.received_date.asc(), model.id.asc()).all()


def get_expiring_batches(db: Session, family: ItemFamily, days: Optional[int] = None):
    """Active batches with stock left that expire within ``days`` (default EXPIRY_WARNING_DAYS)."""
    days = settings.EXPIRY_WARNING_DAYS if days is None else days
    model = family.batch_model
    horizon = today() + timedelta(days=days)
    return (
        db.query(model)
        .options(joinedload(model.item))
        .filter(
            model.status == BATCH_ACTIVE,
            model.quantity_remaining > 0,
            model.expiry_date >= today(),
            model.expiry_date <= horizon,
        )
        .order_by(model.expiry_date.asc(), model.id.asc())
        .all()
    )
