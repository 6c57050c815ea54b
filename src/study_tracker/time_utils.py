from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from study_tracker.errors import ValidationError

DEFAULT_TZ = "UTC"


def resolve_tz(tz_name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or DEFAULT_TZ)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown time zone: {tz_name}") from None


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_utc(dt: datetime) -> datetime:
    # Naive values are treated as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_storage(dt: datetime) -> str:
    return to_utc(dt).isoformat(timespec="seconds")


def from_storage(raw: str) -> datetime:
    return to_utc(datetime.fromisoformat(raw))


def trailing_days(today: date, count: int) -> list[date]:
    """Calendar days ending with ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(count - 1, -1, -1)]


def local_date(dt: datetime, tz: ZoneInfo) -> date:
    return to_utc(dt).astimezone(tz).date()
