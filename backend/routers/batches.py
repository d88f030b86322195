"""
Batch endpoints, mounted once per item family:

    /api/medication-batches/...
    /api/vaccine-batches/...
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from crud import batches as crud_batches
from models.batch_mixin import BATCH_DEPLETED
from schemas.batches import Batch, BatchCreate, BatchUpdate, ExpiringBatch
from schemas.stock import BatchAllocation, ConsumeRequest
from services import stock_ledger
from services.item_families import MEDICATION, VACCINE, ItemFamily
from utils.auth_utils import get_user_identifier

logger = logging.getLogger("batches")


def build_batch_router(family: ItemFamily) -> APIRouter:
    router = APIRouter(prefix=f"/api/{family.key}-batches", tags=[f"{family.label} Batches"])

    @router.get("", response_model=List[ExpiringBatch])
    def read_all_batches(include_depleted: bool = True, db: Session = Depends(get_db)):
        """Every batch of the family with its item's name, soonest expiry first."""
        model = family.batch_model
        query = db.query(model)
        if not include_depleted:
            query = query.filter(model.status != BATCH_DEPLETED)
        return query.order_by(model.expiry_date.asc(), model.id.asc()).all()

    @router.get("/expiring", response_model=List[ExpiringBatch])
    def read_expiring_batches(days: Optional[int] = None, db: Session = Depends(get_db)):
        """Active batches with stock left that expire within ``days`` (30 by default)."""
        return crud_batches.get_expiring_batches(db, family, days=days)

    @router.get("/expiring/{days}", response_model=List[ExpiringBatch])
    def read_expiring_batches_within(days: int, db: Session = Depends(get_db)):
        return crud_batches.get_expiring_batches(db, family, days=days)

    @router.get("/{item_id}/batches", response_model=List[Batch])
    def read_item_batches(item_id: int, include_depleted: bool = True, db: Session = Depends(get_db)):
        stock_ledger.get_item_or_raise(db, family, item_id)
        return crud_batches.get_batches(db, family, item_id, include_depleted=include_depleted)

    @router.post("/{item_id}/batches", response_model=Batch, status_code=status.HTTP_201_CREATED)
    def create_batch(
        item_id: int,
        batch: BatchCreate,
        db: Session = Depends(get_db),
        changed_by: str = Depends(get_user_identifier),
    ):
        """Receive stock as a new batch; quantityRemaining starts at quantityReceived."""
        return stock_ledger.receive_batch(db, family, item_id, batch.model_dump(), changed_by=changed_by)

    @router.post("/{item_id}/consume", response_model=List[BatchAllocation])
    def consume(
        item_id: int,
        request: ConsumeRequest,
        db: Session = Depends(get_db),
        changed_by: str = Depends(get_user_identifier),
    ):
        """Dispense stock from one batch, or soonest-expiring batches first."""
        allocations = stock_ledger.consume_stock(
            db, family, item_id, request.quantity,
            batch_id=request.batch_id, changed_by=changed_by, note=request.note,
        )
        return [BatchAllocation.model_validate(a) for a in allocations]

    @router.patch("/batches/{batch_id}", response_model=Batch)
    def update_batch(
        batch_id: int,
        batch: BatchUpdate,
        db: Session = Depends(get_db),
        changed_by: str = Depends(get_user_identifier),
    ):
        return stock_ledger.update_batch(db, family, batch_id, batch.model_dump(exclude_unset=True), changed_by=changed_by)

    @router.delete("/{batch_id}/dispose", response_model=Batch)
    def dispose_batch(
        batch_id: int,
        db: Session = Depends(get_db),
        changed_by: str = Depends(get_user_identifier),
    ):
        """Write off an expired batch. Batches that have not expired are refused."""
        db_batch = stock_ledger.dispose_batch(db, family, batch_id, changed_by=changed_by)
        logger.info(f"{family.label} batch {db_batch.batch_number} disposed by {changed_by}")
        return db_batch

    return router


medication_batches_router = build_batch_router(MEDICATION)
vaccine_batches_router = build_batch_router(VACCINE)
