from database import Base
from models.batch_mixin import BatchMixin


class MedicationBatch(Base, BatchMixin):
    __tablename__ = "medication_batches"
    __item_model__ = "Medication"
    __item_table__ = "medications"
    __item_fk_column__ = "medication_id"
