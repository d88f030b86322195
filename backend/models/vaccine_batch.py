from sqlalchemy import Column, String
from database import Base
from models.batch_mixin import BatchMixin


class VaccineBatch(Base, BatchMixin):
    __tablename__ = "vaccine_batches"
    __item_model__ = "Vaccine"
    __item_table__ = "vaccines"
    __item_fk_column__ = "vaccine_id"

    lot_number = Column(String(50), nullable=True)
    manufacturer = Column(String(100), nullable=True)
    storage_temperature = Column(String(30), nullable=True)
