from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from database import Base
from models.inventory_item_mixin import InventoryItemMixin
from models.vaccine_batch import VaccineBatch


class Vaccine(Base, InventoryItemMixin):
    __tablename__ = "vaccines"
    __legacy_stock_column__ = "doses_in_stock"

    dosage = Column(String(100), nullable=True)  # e.g., "0.5 mL"
    administration_route = Column(String(50), nullable=True)  # e.g., "IM", "Oral"
    doses_per_vial = Column(Integer, nullable=True)
    storage_temperature = Column(String(30), nullable=True)  # e.g., "2-8°C"
    age_group = Column(String(100), nullable=True)

    batches = relationship(
        "VaccineBatch",
        back_populates="item",
        order_by=[VaccineBatch.expiry_date, VaccineBatch.received_date, VaccineBatch.id],
        passive_deletes="all",
    )
