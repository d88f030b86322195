from sqlalchemy import Column, Integer, String, DateTime
from database import Base
from utils.time_utils import now


class StockAudit(Base):
    __tablename__ = "stock_audit"

    id = Column(Integer, primary_key=True, index=True)
    item_type = Column(String(20), nullable=False, index=True)  # "medication" or "vaccine"
    item_id = Column(Integer, nullable=False, index=True)
    batch_id = Column(Integer, nullable=True)
    change_type = Column(String(30), nullable=False)  # "receive", "consume", "correction", "dispose", "migration"
    change_amount = Column(Integer, nullable=False)  # Positive or negative
    old_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    changed_by = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=now)
    note = Column(String, nullable=True)
