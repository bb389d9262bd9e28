from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_iso(value) -> str | None:
    """Normalize a stored timestamp to an ISO-8601 string.

    This is the only place where the representation of a stored date is
    inspected; everything past the read boundary sees strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return s
    return to_iso(parsed)


def month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def trailing_months(now: datetime, count: int = 6) -> list[tuple[int, int]]:
    """(year, month) pairs for the last `count` months, oldest first, ending at `now`'s month."""
    return [shift_month(now.year, now.month, -i) for i in range(count - 1, -1, -1)]


def day_start(value: datetime) -> datetime:
    return datetime(value.year, value.month, value.day)


def trailing_days(now: datetime, count: int = 30) -> list[datetime]:
    today = day_start(now)
    return [today - timedelta(days=i) for i in range(count - 1, -1, -1)]


def year_of(value) -> int | None:
    """Calendar year of a stored date, or None when it does not parse."""
    if isinstance(value, (datetime, date)):
        return value.year
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).year
    except ValueError:
        return None
