"""
Report Formatting

Shared sort, rounding, limit and label helpers used by the aggregators.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence, TypeVar, Union
from zoneinfo import ZoneInfo

T = TypeVar('T')

# Short month names as rendered by the es-ES locale
SPANISH_MONTHS = ['ene', 'feb', 'mar', 'abr', 'may', 'jun',
                  'jul', 'ago', 'sept', 'oct', 'nov', 'dic']


def sort_desc(rows: Sequence[T], key: Union[str, Callable[[T], Any]]) -> List[T]:
    """Stable descending sort; equal keys keep their original order"""
    getter = key if callable(key) else (lambda row: row[key] if isinstance(row, dict) else getattr(row, key))
    return sorted(rows, key=getter, reverse=True)


def round_half_away(value: float, decimals: int = 0) -> Union[int, float]:
    """
    Round half away from zero (2.5 -> 3, -2.5 -> -3).

    Returns an int when decimals is 0.
    """
    quantum = Decimal(1).scaleb(-decimals)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if decimals == 0:
        return int(rounded)
    return float(rounded)


def take(rows: Sequence[T], limit: Optional[int]) -> List[T]:
    """First limit rows; no-op when limit is None or >= len(rows)"""
    if limit is None or limit >= len(rows):
        return list(rows)
    return list(rows[:max(0, limit)])


@lru_cache(maxsize=32)
def get_timezone(name: str) -> tzinfo:
    if name.upper() == 'UTC':
        return timezone.utc
    return ZoneInfo(name)


def to_local(moment: datetime, tz_name: str = 'UTC') -> datetime:
    """Convert an aware datetime to the reporting timezone"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(get_timezone(tz_name))


def month_label(moment: date) -> str:
    """'ene 2024' style label"""
    return f"{SPANISH_MONTHS[moment.month - 1]} {moment.year}"


def day_label(moment: date) -> str:
    """'5/1/2024' style label (day/month/year)"""
    return f"{moment.day}/{moment.month}/{moment.year}"
