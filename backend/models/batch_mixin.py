from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import declared_attr, relationship

import settings
from models.audit_mixin import TimestampMixin
from utils.time_utils import parse_date, today

BATCH_ACTIVE = "active"
BATCH_EXPIRED = "expired"
BATCH_DEPLETED = "depleted"
BATCH_STATUSES = (BATCH_ACTIVE, BATCH_EXPIRED, BATCH_DEPLETED)


class BatchMixin(TimestampMixin):
    """A single received lot of a medication or vaccine.

    Concrete classes set ``__tablename__``, ``__item_model__`` (mapped class name
    of the parent), ``__item_table__`` and ``__item_fk_column__``. The parent key
    is always reachable as ``batch.item_id`` whatever the column is called.
    """
    __item_model__ = None
    __item_table__ = None
    __item_fk_column__ = None

    id = Column(Integer, primary_key=True, index=True)
    batch_number = Column(String(50), nullable=False)
    quantity_received = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(10, 2), nullable=False, default=0)
    expiry_date = Column(Date, nullable=False, index=True)
    received_date = Column(Date, nullable=False, default=today)
    supplier = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=BATCH_ACTIVE, index=True)
    notes = Column(Text, nullable=True)

    @declared_attr
    def item_id(cls):
        return Column(
            cls.__item_fk_column__,
            Integer,
            ForeignKey(f"{cls.__item_table__}.id", onupdate="CASCADE", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        )

    @declared_attr
    def item(cls):
        return relationship(cls.__item_model__, back_populates="batches")

    @declared_attr
    def __table_args__(cls):
        table = cls.__tablename__
        return (
            UniqueConstraint(cls.__item_fk_column__, "batch_number", name=f"uq_{table}_item_batch_number"),
            CheckConstraint("quantity_received >= 0", name=f"ck_{table}_received_non_negative"),
            CheckConstraint("quantity_remaining >= 0", name=f"ck_{table}_remaining_non_negative"),
            CheckConstraint("quantity_remaining <= quantity_received", name=f"ck_{table}_remaining_within_received"),
            Index(f"ix_{table}_fifo", cls.__item_fk_column__, "status", "expiry_date"),
        )

    @property
    def item_name(self):
        return self.item.name if self.item is not None else None

    @property
    def quantity_used(self) -> int:
        return (self.quantity_received or 0) - (self.quantity_remaining or 0)

    @property
    def usage_percentage(self) -> int:
        if not self.quantity_received:
            return 0
        return round(self.quantity_used / self.quantity_received * 100)

    @property
    def days_until_expiry(self):
        expiry = parse_date(self.expiry_date)
        if expiry is None:
            return None
        return (expiry - today()).days

    @property
    def is_expired(self) -> bool:
        expiry = parse_date(self.expiry_date)
        return expiry is not None and expiry < today()

    @property
    def is_expiring_soon(self) -> bool:
        days = self.days_until_expiry
        return days is not None and 0 < days <= settings.EXPIRY_WARNING_DAYS

    def refresh_status(self, as_of=None) -> str:
        """Re-evaluate the lifecycle status after the batch was created or changed."""
        as_of = as_of or today()
        remaining = self.quantity_remaining or 0
        if remaining == 0:
            if self.status == BATCH_ACTIVE:
                self.status = BATCH_DEPLETED
            return self.status
        if self.status == BATCH_DEPLETED:
            self.status = BATCH_ACTIVE
        expiry = parse_date(self.expiry_date)
        past_expiry = expiry is not None and expiry < as_of
        if self.status == BATCH_ACTIVE and past_expiry:
            self.status = BATCH_EXPIRED
        elif self.status == BATCH_EXPIRED and not past_expiry:
            # expiry date was corrected
            self.status = BATCH_ACTIVE
        return self.status
