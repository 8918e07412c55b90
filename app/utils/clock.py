from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    # Naive UTC, matching what pymongo hands back by default
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(dt: datetime) -> datetime:
    return datetime(dt.year, dt.month, dt.day)


def as_datetime(value: date | datetime | None, end_of_day: bool = False) -> datetime | None:
    """Mongo cannot store bare dates; widen them to naive datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime.combine(value, time(23, 59, 59) if end_of_day else time.min)
