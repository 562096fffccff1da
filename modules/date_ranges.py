"""
Date helpers bounding the query windows sent to the ads platform and the CRM
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

# The ads platform only serves the last 90 days for click-level reports.
# 89 days of lookback plus today keeps us inside that limit.
ADS_MAX_WINDOW_DAYS = 90
ADS_MAX_LOOKBACK_DAYS = ADS_MAX_WINDOW_DAYS - 1


def format_date(value: date) -> str:
    """YYYY-MM-DD from the value's own calendar components, no timezone shift"""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _as_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: date, end: date) -> List[date]:
    """Every calendar date from ``start`` to ``end``, both inclusive"""
    current = _as_date(start)
    last = _as_date(end)
    days = []
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def last_n_days(days: int, today: Optional[date] = None) -> Tuple[date, date]:
    """(today - days, today)"""
    end = _as_date(today or date.today())
    return end - timedelta(days=days), end


def year_to_date(today: Optional[date] = None) -> Tuple[date, date]:
    end = _as_date(today or date.today())
    return date(end.year, 1, 1), end


def clamp_to_ads_window(start: date, end: date, today: Optional[date] = None) -> Tuple[date, date]:
    """Move ``start`` forward so the range never reaches past the 90-day limit"""
    today = _as_date(today or date.today())
    earliest = today - timedelta(days=ADS_MAX_LOOKBACK_DAYS)
    start = _as_date(start)
    end = _as_date(end)
    return max(start, earliest), end


def chunk_date_range(start: date, end: date, max_days: int = ADS_MAX_WINDOW_DAYS) -> List[Tuple[date, date]]:
    """Split an inclusive range into consecutive windows of at most ``max_days``"""
    chunks = []
    current = _as_date(start)
    last = _as_date(end)
    while current <= last:
        chunk_end = min(current + timedelta(days=max_days - 1), last)
        chunks.append((current, chunk_end))
        current = chunk_end + timedelta(days=1)
    return chunks


def to_crm_timestamp(value: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, as the CRM search expects"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def contact_created_after(mode: str, now: Optional[datetime] = None) -> datetime:
    """Lower bound on contact creation date for the given sync mode"""
    now = now or datetime.now(timezone.utc)
    if mode == "year_to_date":
        return datetime(now.year, 1, 1, tzinfo=now.tzinfo or timezone.utc)
    return now - timedelta(days=30)
