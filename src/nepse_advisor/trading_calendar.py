"""
NEPSE trading calendar.

Answers whether a date is a trading day and whether the coming week is
interrupted by public holidays. The exchange trades Sunday to Thursday;
Friday and Saturday are weekends.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from nepse_advisor.config import (
    HOLIDAY_LOOKAHEAD_DAYS,
    INTERRUPTED_WEEK_NOTE,
    SEASONAL_NOTES,
    SHORT_WEEK_NOTE,
    WEEKEND_DAYS,
)

DateLike = Union[date, datetime, str]

HOLIDAYS_2024 = [
    '2024-01-15',  # Maghe Sankranti
    '2024-01-30',  # Martyrs Day
    '2024-03-08',  # Maha Shivaratri
    '2024-03-24',  # Fagu Purnima
    '2024-04-13',  # New Year 2081
    '2024-05-23',  # Buddha Jayanti
    '2024-10-03',  # Ghatasthapana
    '2024-10-10',  # Fulpati
    '2024-10-11',  # Maha Ashtami
    '2024-10-12',  # Maha Nawami
    '2024-10-13',  # Vijaya Dashami
    '2024-10-14',  # Ekadashi
    '2024-10-30',  # Laxmi Puja
    '2024-11-01',  # Govardhan Puja
    '2024-11-02',  # Bhai Tika
]

HOLIDAYS_2025 = [
    '2025-01-14',  # Maghe Sankranti
    '2025-10-01',  # Dashain
]

HOLIDAYS = frozenset(date.fromisoformat(d) for d in HOLIDAYS_2024 + HOLIDAYS_2025)

@dataclass(frozen=True)
class HolidayContext:
    """Holiday classification of the week following a reference date."""
    has_holiday: bool
    count: int
    note: Optional[str]

    def to_dict(self) -> dict:
        return {'hasHoliday': self.has_holiday, 'count': self.count, 'note': self.note}

def to_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO string to a date.

    Raises:
        ValueError: If a string is not an ISO date
        TypeError: If the value is not date-like
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f"Expected a date, datetime or ISO date string, got {type(value).__name__}")

def is_holiday(value: DateLike) -> bool:
    """Check whether a date is in the holiday table."""
    return to_date(value) in HOLIDAYS

def is_trading_day(value: DateLike) -> bool:
    """Check whether the exchange is open on a date."""
    day = to_date(value)
    if day.weekday() in WEEKEND_DAYS:
        return False
    return day not in HOLIDAYS

def get_holiday_context(reference: DateLike) -> HolidayContext:
    """Classify the 7 calendar days strictly after ``reference``.

    One holiday makes a short week. Two or more are labelled by season when a
    holiday falls in a festival month (the last such match wins), otherwise as
    an interrupted week.
    """
    start = to_date(reference)
    count = 0
    seasonal_note = None

    for offset in range(1, HOLIDAY_LOOKAHEAD_DAYS + 1):
        day = start + timedelta(days=offset)
        if day in HOLIDAYS:
            count += 1
            seasonal_note = SEASONAL_NOTES.get(day.month, seasonal_note)

    if count >= 2:
        return HolidayContext(True, count, seasonal_note or INTERRUPTED_WEEK_NOTE)
    if count == 1:
        return HolidayContext(True, 1, SHORT_WEEK_NOTE)
    return HolidayContext(False, 0, None)
