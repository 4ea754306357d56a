"""UTC helpers shared by models and engine.

All instants are stored and compared as naive UTC datetimes, matching the
``DateTime`` columns in the database layer.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current instant as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """Normalize a datetime to naive UTC.

    Naive inputs are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
