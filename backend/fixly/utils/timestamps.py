from datetime import datetime, timezone

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # Naive datetimes coming from clients are taken to be UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return as_utc(dt).strftime(ISO_FORMAT)


def local_midnight(now: datetime) -> datetime:
    """Start of the server-local calendar day containing ``now``."""
    return as_utc(now).astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
