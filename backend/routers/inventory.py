from datetime import date
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from crud import inventory_items as crud_inventory_items
from crud import stock_audit as crud_stock_audit
from exceptions import ItemNotFoundError, ValidationError
from schemas.inventory_items import (
    InventorySummary,
    Medication,
    MedicationCreate,
    MedicationDetail,
    MedicationUpdate,
    Vaccine,
    VaccineCreate,
    VaccineDetail,
    VaccineUpdate,
)
from schemas.stock import BatchAllocation, StockUpdate, StockUpdateResult
from schemas.stock_audit import StockAudit
from services import stock_ledger
from services.item_families import MEDICATION, VACCINE, ItemFamily, get_family
from utils.auth_utils import get_user_identifier

router = APIRouter(prefix="/api/inventory", tags=["Inventory"])
logger = logging.getLogger("inventory")


def _ensure_unique_name(db: Session, family: ItemFamily, name: Optional[str], item_id: Optional[int] = None):
    if name is None:
        return
    existing = crud_inventory_items.get_item_by_name(db, family, name)
    if existing is not None and existing.id != item_id:
        raise ValidationError(f"{family.label} with this name already exists")


def _get_or_404(db: Session, family: ItemFamily, item_id: int):
    db_item = crud_inventory_items.get_item(db, family, item_id)
    if db_item is None:
        raise ItemNotFoundError(family.label, item_id)
    return db_item


# --- Medications ---

@router.get("/medications", response_model=List[Medication])
def read_medications(
    skip: int = 0,
    limit: int = 100,
    category: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    """List medications with stock figures derived from their batches."""
    return crud_inventory_items.get_items(
        db, MEDICATION, skip=skip, limit=limit, category=category, search=search, include_inactive=include_inactive
    )


@router.post("/medications", response_model=Medication, status_code=status.HTTP_201_CREATED)
def create_medication(
    medication: MedicationCreate,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    _ensure_unique_name(db, MEDICATION, medication.name)
    db_item = crud_inventory_items.create_item(db, MEDICATION, medication.model_dump(), changed_by=changed_by)
    logger.info(f"Medication '{db_item.name}' created by user {changed_by}")
    return db_item


@router.get("/medications/{item_id}", response_model=MedicationDetail)
def read_medication(item_id: int, db: Session = Depends(get_db)):
    """A single medication, its batches included (soonest expiry first)."""
    return _get_or_404(db, MEDICATION, item_id)


@router.patch("/medications/{item_id}", response_model=Medication)
def update_medication(
    item_id: int,
    medication: MedicationUpdate,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    _get_or_404(db, MEDICATION, item_id)
    _ensure_unique_name(db, MEDICATION, medication.name, item_id)
    db_item = crud_inventory_items.update_item(
        db, MEDICATION, item_id, medication.model_dump(exclude_unset=True), changed_by=changed_by
    )
    logger.info(f"Medication '{db_item.name}' (ID: {item_id}) updated by user {changed_by}")
    return db_item


@router.delete("/medications/{item_id}")
def delete_medication(
    item_id: int,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    """Delete a medication. Medications with batches cannot be deleted."""
    crud_inventory_items.delete_item(db, MEDICATION, item_id, changed_by=changed_by)
    return {"message": "Medication deleted successfully"}


# --- Vaccines ---

@router.get("/vaccines", response_model=List[Vaccine])
def read_vaccines(
    skip: int = 0,
    limit: int = 100,
    category: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    """List vaccines with dose counts derived from their batches."""
    return crud_inventory_items.get_items(
        db, VACCINE, skip=skip, limit=limit, category=category, search=search, include_inactive=include_inactive
    )


@router.post("/vaccines", response_model=Vaccine, status_code=status.HTTP_201_CREATED)
def create_vaccine(
    vaccine: VaccineCreate,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    _ensure_unique_name(db, VACCINE, vaccine.name)
    db_item = crud_inventory_items.create_item(db, VACCINE, vaccine.model_dump(), changed_by=changed_by)
    logger.info(f"Vaccine '{db_item.name}' created by user {changed_by}")
    return db_item


@router.get("/vaccines/{item_id}", response_model=VaccineDetail)
def read_vaccine(item_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, VACCINE, item_id)


@router.patch("/vaccines/{item_id}", response_model=Vaccine)
def update_vaccine(
    item_id: int,
    vaccine: VaccineUpdate,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    _get_or_404(db, VACCINE, item_id)
    _ensure_unique_name(db, VACCINE, vaccine.name, item_id)
    db_item = crud_inventory_items.update_item(
        db, VACCINE, item_id, vaccine.model_dump(exclude_unset=True), changed_by=changed_by
    )
    logger.info(f"Vaccine '{db_item.name}' (ID: {item_id}) updated by user {changed_by}")
    return db_item


@router.delete("/vaccines/{item_id}")
def delete_vaccine(
    item_id: int,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    crud_inventory_items.delete_item(db, VACCINE, item_id, changed_by=changed_by)
    return {"message": "Vaccine deleted successfully"}


# --- Stock ---

@router.get("/summary", response_model=InventorySummary)
def read_inventory_summary(db: Session = Depends(get_db)):
    """Status counts, expiring batches and total units for both families."""
    return {
        "medications": crud_inventory_items.get_family_summary(db, MEDICATION),
        "vaccines": crud_inventory_items.get_family_summary(db, VACCINE),
    }


@router.post("/update-stock", response_model=StockUpdateResult)
def update_stock(
    payload: StockUpdate,
    db: Session = Depends(get_db),
    changed_by: str = Depends(get_user_identifier),
):
    """
    Add or subtract stock without naming a lot.

    "add" receives the quantity as a new batch; "subtract" consumes it from the
    named batch, or soonest-expiring batches first when no batchId is given.
    """
    family = get_family(payload.type)
    operation = (payload.operation or "").strip().lower()
    allocations = []
    if operation == "add":
        stock_ledger.add_stock(
            db, family, payload.id, payload.quantity,
            expiry_date=payload.expiry_date, changed_by=changed_by, note=payload.note,
        )
    elif operation == "subtract":
        allocations = stock_ledger.consume_stock(
            db, family, payload.id, payload.quantity,
            batch_id=payload.batch_id, changed_by=changed_by, note=payload.note,
        )
    else:
        raise ValidationError('Invalid operation. Must be "add" or "subtract"')

    db.expire_all()
    db_item = _get_or_404(db, family, payload.id)
    logger.info(
        f"Stock {operation} of {payload.quantity} on {family.key} {payload.id} by {changed_by}: "
        f"total now {db_item.total_stock} ({db_item.status})"
    )
    return StockUpdateResult(
        type=family.key,
        id=db_item.id,
        name=db_item.name,
        operation=operation,
        quantity=payload.quantity,
        total_stock=db_item.total_stock,
        status=db_item.status,
        next_expiry_date=db_item.next_expiry_date,
        batch_count=db_item.batch_count,
        allocations=[BatchAllocation.model_validate(a) for a in allocations],
    )


@router.get("/{family_name}/{item_id}/audit", response_model=List[StockAudit])
def read_stock_audit(
    family_name: str,
    item_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
):
    """Stock movements of one item, newest first."""
    family = get_family(family_name)
    _get_or_404(db, family, item_id)
    return crud_stock_audit.get_stock_audits(
        db, item_type=family.key, item_id=item_id, start_date=start_date, end_date=end_date
    )
