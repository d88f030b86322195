"""
Typed errors raised by the inventory crud and service layers.

Routers translate them to HTTP responses; everything subclasses ValueError so
older call sites that catch ValueError keep working.

    InventoryError
    +-- ValidationError          (400)
    +-- DuplicateBatchError      (400)
    +-- BatchStateError          (400)
    +-- InsufficientStockError   (409)
    +-- ItemNotFoundError        (404)
    +-- BatchNotFoundError       (404)
    +-- ItemInUseError           (409)
"""

from typing import Optional


class InventoryError(ValueError):
    status_code = 400
    code = "INVENTORY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(InventoryError):
    code = "VALIDATION_ERROR"


class DuplicateBatchError(InventoryError):
    code = "DUPLICATE_BATCH"

    def __init__(self, batch_number: str, item_id: int):
        super().__init__(f"Batch number '{batch_number}' already exists for item {item_id}")
        self.batch_number = batch_number
        self.item_id = item_id


class BatchStateError(InventoryError):
    code = "INVALID_BATCH_STATE"


class InsufficientStockError(InventoryError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, requested: int, available: int, batch_id: Optional[int] = None):
        target = f"batch {batch_id}" if batch_id is not None else "active batches"
        super().__init__(f"Insufficient stock in {target}. Available: {available}, Requested: {requested}")
        self.requested = requested
        self.available = available
        self.batch_id = batch_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"requested": self.requested, "available": self.available})
        if self.batch_id is not None:
            data["batchId"] = self.batch_id
        return data


class ItemNotFoundError(InventoryError):
    status_code = 404
    code = "ITEM_NOT_FOUND"

    def __init__(self, label: str, item_id: int):
        super().__init__(f"{label} not found")
        self.item_id = item_id


class BatchNotFoundError(InventoryError):
    status_code = 404
    code = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: int):
        super().__init__("Batch not found")
        self.batch_id = batch_id


class ItemInUseError(InventoryError):
    status_code = 409
    code = "ITEM_IN_USE"
