from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from konfi_events.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_zone() -> tzinfo:
    return ZoneInfo(settings.event_timezone)


def ensure_aware(value: datetime | None, zone: tzinfo | None = None) -> datetime | None:
    """Naive input is read as local event time."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=zone or local_zone())
