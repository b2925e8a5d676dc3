from datetime import datetime, timezone


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime read back from Mongo (naive means UTC) to an aware UTC value."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    # BSON dates only keep milliseconds
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)
