from datetime import datetime, date
from typing import Optional, Union
import pytz

import settings


def now() -> datetime:
    """Timezone-aware current time in the health center's zone."""
    return datetime.now(pytz.timezone(settings.APP_TIMEZONE))


def today() -> date:
    return now().date()


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Coerce an expiry/received date from the API, the DB or a legacy JSON file.

    Returns None for anything that cannot be read as a date; callers treat that
    as "no date" rather than failing. Slash and dash dates are read day-first
    (03/04/2025 is 3 April); month-first dates are not recognised.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    # ISO timestamps written by the old Node backend, e.g. 2025-03-01T00:00:00.000Z
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None
