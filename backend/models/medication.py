from sqlalchemy import Boolean, Column, Numeric, String
from sqlalchemy.orm import relationship
from database import Base
from models.inventory_item_mixin import InventoryItemMixin
from models.medication_batch import MedicationBatch


class Medication(Base, InventoryItemMixin):
    __tablename__ = "medications"
    __legacy_stock_column__ = "units_in_stock"

    generic_name = Column(String(255), nullable=True)
    brand_name = Column(String(255), nullable=True)
    dosage = Column(String(100), nullable=True)
    form = Column(String(50), nullable=True)  # e.g., "Tablet", "Syrup", "Injection"
    strength = Column(String(100), nullable=True)
    selling_price = Column(Numeric(10, 2), nullable=True)
    is_prescription_required = Column(Boolean, nullable=False, default=True)

    # Soonest-expiring first; deletion of a medication with batches is refused by the FK
    batches = relationship(
        "MedicationBatch",
        back_populates="item",
        order_by=[MedicationBatch.expiry_date, MedicationBatch.received_date, MedicationBatch.id],
        passive_deletes="all",
    )
