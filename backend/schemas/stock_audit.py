from datetime import datetime
from typing import Optional
from schemas.common import CamelModel

class StockAudit(CamelModel):
    id: int
    item_type: str
    item_id: int
    batch_id: Optional[int] = None
    change_type: str
    change_amount: int
    old_quantity: int
    new_quantity: int
    changed_by: Optional[str] = None
    timestamp: Optional[datetime] = None
    note: Optional[str] = None
