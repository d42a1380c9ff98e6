"""
Time normalization for appointment slots.

Submitted times are interpreted in the caller's IANA zone, converted to UTC
and snapped to the scheduling grid. Remainder minutes 1-2 round down and 3-4
round up; seconds are discarded before snapping.
"""
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional, Tuple
import pytz

from ..config import settings
from .exceptions import ValidationError

def resolve_timezone(tz_name: Optional[str]) -> pytz.BaseTzInfo:
    """
    Resolve an IANA zone name, falling back to the clinic default.
    
    Args:
        tz_name: Zone identifier such as "Asia/Riyadh", or None
        
    Returns:
        pytz timezone
        
    Raises:
        ValidationError: If the zone is unknown
    """
    name = tz_name or settings.default_timezone
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone '{name}'")

def to_utc(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """
    Convert a submitted datetime to an aware UTC datetime.
    
    Naive values are wall-clock times in ``tz``; values carrying an offset
    keep their own offset.

    Raises:
        ValidationError: If the wall-clock time is skipped or repeated by a
            DST transition in ``tz``
    """
    if value.tzinfo is None:
        try:
            value = tz.localize(value, is_dst=None)
        except pytz.NonExistentTimeError:
            raise ValidationError(f"{value.isoformat()} does not exist in {tz.zone}")
        except pytz.AmbiguousTimeError:
            raise ValidationError(f"{value.isoformat()} is ambiguous in {tz.zone}; include a UTC offset")
    return value.astimezone(timezone.utc)

def snap_to_grid(value: datetime, grid_minutes: Optional[int] = None) -> datetime:
    """
    Snap a datetime to the scheduling grid.
    
    Args:
        value: Datetime to snap
        grid_minutes: Grid size, defaults to settings.slot_grid_minutes
        
    Returns:
        datetime: Snapped datetime with zero seconds
    """
    grid = grid_minutes or settings.slot_grid_minutes
    value = value.replace(second=0, microsecond=0)
    remainder = value.minute % grid
    if remainder == 0:
        return value
    # Round half down: for a 5 minute grid, 1-2 go down and 3-4 go up
    if remainder <= (grid - 1) // 2:
        return value - timedelta(minutes=remainder)
    return value + timedelta(minutes=grid - remainder)

def duration_minutes(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes between two instants, rounded to the nearest minute."""
    return int(round((end_time - start_time).total_seconds() / 60))

def normalize_instant(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Convert to UTC and snap to the grid."""
    return snap_to_grid(to_utc(value, tz))

def local_day_bounds(day: date, tz: pytz.BaseTzInfo) -> Tuple[datetime, datetime]:
    """
    UTC bounds of a calendar day in ``tz`` as a half-open interval.
    
    Args:
        day: Calendar day in the clinic's zone
        tz: Zone the day is expressed in
        
    Returns:
        Tuple of (start, end) UTC datetimes
    """
    start = tz.localize(datetime.combine(day, time.min))
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

def local_month_bounds(year: int, month: int, tz: pytz.BaseTzInfo) -> Tuple[datetime, datetime]:
    """UTC bounds of a calendar month in ``tz`` as a half-open interval."""
    first = date(year, month, 1)
    next_first = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    start = tz.localize(datetime.combine(first, time.min))
    end = tz.localize(datetime.combine(next_first, time.min))
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

def to_local(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Render a stored UTC instant in the caller's zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)
