from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from schemas.common import CamelModel


class BatchCreate(CamelModel):
    batch_number: Optional[str] = None
    quantity_received: Optional[int] = None
    expiry_date: Optional[date] = None
    received_date: Optional[date] = None
    unit_cost: Optional[Decimal] = None
    supplier: Optional[str] = None
    notes: Optional[str] = None
    # vaccine batches only
    lot_number: Optional[str] = None
    manufacturer: Optional[str] = None
    storage_temperature: Optional[str] = None


class BatchUpdate(CamelModel):
    """Correction edit; quantity_remaining must stay within 0..quantity_received."""
    batch_number: Optional[str] = None
    quantity_received: Optional[int] = None
    quantity_remaining: Optional[int] = None
    expiry_date: Optional[date] = None
    received_date: Optional[date] = None
    unit_cost: Optional[Decimal] = None
    supplier: Optional[str] = None
    notes: Optional[str] = None
    lot_number: Optional[str] = None
    manufacturer: Optional[str] = None
    storage_temperature: Optional[str] = None


class Batch(CamelModel):
    id: int
    item_id: int
    batch_number: str
    quantity_received: int
    quantity_remaining: int
    unit_cost: Decimal
    expiry_date: date
    received_date: date
    supplier: Optional[str] = None
    status: str
    notes: Optional[str] = None
    lot_number: Optional[str] = None
    manufacturer: Optional[str] = None
    storage_temperature: Optional[str] = None
    # derived
    quantity_used: int
    usage_percentage: int
    days_until_expiry: Optional[int] = None
    is_expired: bool
    is_expiring_soon: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExpiringBatch(Batch):
    item_name: Optional[str] = None
