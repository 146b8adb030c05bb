"""Time source and calendar-day keys. All engine times are UTC."""
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def day_key(moment: datetime | None = None) -> str:
    """Calendar day of ``moment`` as YYYY-MM-DD. Days roll over at UTC midnight."""
    if moment is None:
        moment = utc_now()
    return ensure_utc(moment).date().isoformat()


def to_iso(moment: datetime) -> str:
    return ensure_utc(moment).isoformat()


def from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))
