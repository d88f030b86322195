from sqlalchemy.orm import class_mapper
from .time_utils import now, today, parse_date

def sqlalchemy_to_dict(obj):
    """Convert a SQLAlchemy object to a dictionary."""
    if not obj:
        return None
    mapper = class_mapper(obj.__class__)
    result = {}
    for c in mapper.column_attrs:
        value = getattr(obj, c.key)
        # Convert date/datetime objects to ISO format strings
        if hasattr(value, 'isoformat'):
            value = value.isoformat()
        # Convert Decimal objects to floats
        elif hasattr(value, 'normalize') and hasattr(value, 'from_float'):
            value = float(value)
        result[c.key] = value
    return result

__all__ = ['now', 'today', 'parse_date', 'sqlalchemy_to_dict']
