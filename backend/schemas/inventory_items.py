from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import Field, computed_field
import settings
from schemas.common import CamelModel
from schemas.batches import Batch


class InventoryItemBase(CamelModel):
    name: str
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    minimum_stock: int = Field(default=settings.LOW_STOCK_DEFAULT, ge=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    is_active: bool = True
    notes: Optional[str] = None


class InventoryItemUpdate(CamelModel):
    # stock and status are derived from batches, never set directly
    name: Optional[str] = None
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    minimum_stock: Optional[int] = Field(default=None, ge=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class InventoryItemRead(InventoryItemBase):
    id: int
    status: str
    total_stock: int
    next_expiry_date: Optional[date] = None
    batch_count: int
    expiring_batches_count: int
    average_unit_cost: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field(alias="quantityInStock")
    @property
    def quantity_in_stock(self) -> int:
        return self.total_stock

    @computed_field(alias="expiryDate")
    @property
    def expiry_date(self) -> Optional[date]:
        return self.next_expiry_date


# --- Medications ---

class MedicationFields(CamelModel):
    generic_name: Optional[str] = None
    brand_name: Optional[str] = None
    dosage: Optional[str] = None
    form: Optional[str] = None
    strength: Optional[str] = None
    selling_price: Optional[Decimal] = Field(default=None, ge=0)
    is_prescription_required: Optional[bool] = None


class MedicationCreate(InventoryItemBase, MedicationFields):
    is_prescription_required: bool = True


class MedicationUpdate(InventoryItemUpdate, MedicationFields):
    pass


class Medication(InventoryItemRead, MedicationFields):

    @computed_field(alias="unitsInStock")
    @property
    def units_in_stock(self) -> int:
        return self.total_stock


class MedicationDetail(Medication):
    batches: List[Batch] = []


# --- Vaccines ---

class VaccineFields(CamelModel):
    dosage: Optional[str] = None
    administration_route: Optional[str] = None
    doses_per_vial: Optional[int] = Field(default=None, ge=1)
    storage_temperature: Optional[str] = None
    age_group: Optional[str] = None


class VaccineCreate(InventoryItemBase, VaccineFields):
    pass


class VaccineUpdate(InventoryItemUpdate, VaccineFields):
    pass


class Vaccine(InventoryItemRead, VaccineFields):

    @computed_field(alias="dosesInStock")
    @property
    def doses_in_stock(self) -> int:
        return self.total_stock


class VaccineDetail(Vaccine):
    batches: List[Batch] = []


# --- Summary ---

class FamilySummary(CamelModel):
    total: int
    available: int
    low_stock: int
    out_of_stock: int
    expired: int
    expiring: int
    total_units: int


class InventorySummary(CamelModel):
    medications: FamilySummary
    vaccines: FamilySummary
