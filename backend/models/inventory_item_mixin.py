from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import Boolean, Column, Date, Integer, Numeric, String, Text
from sqlalchemy.orm import declared_attr

import settings
from models.audit_mixin import TimestampMixin
from models.batch_mixin import BATCH_ACTIVE
from services.stock_status import STATUS_AVAILABLE, derive_status
from utils.time_utils import parse_date, today


class InventoryItemMixin(TimestampMixin):
    """Columns and batch-derived figures shared by medications and vaccines.

    Subclasses set ``__legacy_stock_column__`` to the name of the flat stock
    column that predates batch tracking (``units_in_stock`` / ``doses_in_stock``)
    and define a ``batches`` relationship.

    Everything under "Derived" is recomputed from the loaded ``batches`` on
    every access and is never written back.
    """
    __legacy_stock_column__ = None

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    category = Column(String(100), nullable=True, index=True)
    manufacturer = Column(String(255), nullable=True)
    minimum_stock = Column(Integer, nullable=False, default=settings.LOW_STOCK_DEFAULT)
    unit_cost = Column(Numeric(10, 2), nullable=True)  # default cost for new batches
    status = Column(String(20), nullable=False, default=STATUS_AVAILABLE, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    # Legacy flat fields, authoritative only until the first batch exists
    legacy_batch_number = Column("batch_number", String(50), nullable=True)
    legacy_expiry_date = Column("expiry_date", Date, nullable=True)

    @declared_attr
    def legacy_stock(cls):
        return Column(cls.__legacy_stock_column__, Integer, nullable=False, default=0)

    # --- Derived ---------------------------------------------------------

    def _stocked_batches(self):
        return [
            b for b in (self.batches or [])
            if b.status == BATCH_ACTIVE and (b.quantity_remaining or 0) > 0
        ]

    @property
    def total_stock(self) -> int:
        return sum(b.quantity_remaining for b in self._stocked_batches())

    @property
    def next_expiry_date(self):
        dates = [parse_date(b.expiry_date) for b in self._stocked_batches()]
        dates = [d for d in dates if d is not None]
        return min(dates) if dates else None

    @property
    def batch_count(self) -> int:
        return len([b for b in (self.batches or []) if b.status == BATCH_ACTIVE])

    @property
    def expiring_batches_count(self) -> int:
        horizon = today() + timedelta(days=settings.EXPIRY_WARNING_DAYS)
        count = 0
        for batch in self._stocked_batches():
            expiry = parse_date(batch.expiry_date)
            if expiry is not None and expiry <= horizon:
                count += 1
        return count

    @property
    def average_unit_cost(self) -> Decimal:
        fallback = Decimal(str(self.unit_cost or 0))
        stocked = self._stocked_batches()
        total_quantity = sum(b.quantity_remaining for b in stocked)
        if total_quantity <= 0:
            return fallback
        total_value = sum(Decimal(str(b.unit_cost or 0)) * b.quantity_remaining for b in stocked)
        return (total_value / total_quantity).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def has_batches(self) -> bool:
        return bool(self.batches)

    @property
    def derived_status(self) -> str:
        """Status the item should carry for its current batches (not persisted)."""
        return derive_status(self.total_stock, self.minimum_stock, self.next_expiry_date)
