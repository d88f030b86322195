from datetime import date
from typing import List, Optional
from schemas.common import CamelModel


class StockUpdate(CamelModel):
    type: str  # "medication" or "vaccine"
    id: int
    quantity: int
    operation: str  # "add" or "subtract"
    batch_id: Optional[int] = None
    expiry_date: Optional[date] = None
    note: Optional[str] = None


class ConsumeRequest(CamelModel):
    quantity: int
    batch_id: Optional[int] = None
    note: Optional[str] = None


class BatchAllocation(CamelModel):
    batch_id: int
    batch_number: str
    quantity: int
    remaining: int


class StockUpdateResult(CamelModel):
    type: str
    id: int
    name: str
    operation: str
    quantity: int
    total_stock: int
    status: str
    next_expiry_date: Optional[date] = None
    batch_count: int
    allocations: List[BatchAllocation] = []
