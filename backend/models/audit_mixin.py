from sqlalchemy import Column, DateTime, String
from utils.time_utils import now


class TimestampMixin:
    """Mixin that provides created/updated timestamps and user info.

    Timestamps are timezone-aware and stamped in settings.APP_TIMEZONE.
    """
    created_at = Column(DateTime(timezone=True), default=now)
    updated_at = Column(DateTime(timezone=True), onupdate=now)
    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)
