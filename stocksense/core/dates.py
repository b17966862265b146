from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def split_local(value: datetime, tz_name: str) -> tuple[str, str]:
    """Return ``("YYYY-MM-DD", "HH:MM")`` for ``value`` in the display timezone."""
    local = ensure_utc(value).astimezone(_zone(tz_name))
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")
