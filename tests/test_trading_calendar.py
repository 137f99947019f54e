"""Tests for the trading calendar."""

from datetime import date, datetime

import pytest

from nepse_advisor import trading_calendar
from nepse_advisor.trading_calendar import (
    HolidayContext,
    get_holiday_context,
    is_holiday,
    is_trading_day,
    to_date,
)

def test_to_date():
    """Test coercion of date-like values."""
    assert to_date(datetime(2024, 6, 20, 15, 30)) == date(2024, 6, 20)
    assert to_date(date(2024, 6, 20)) == date(2024, 6, 20)
    assert to_date("2024-06-20T10:00:00") == date(2024, 6, 20)
    with pytest.raises(ValueError):
        to_date("not a date")
    with pytest.raises(TypeError):
        to_date(20240620)

def test_is_trading_day():
    """Test weekends and holidays are closed."""
    assert is_trading_day(date(2024, 6, 16))       # Sunday
    assert is_trading_day(date(2024, 6, 20))       # Thursday
    assert not is_trading_day(date(2024, 6, 14))   # Friday
    assert not is_trading_day(date(2024, 6, 15))   # Saturday
    assert not is_trading_day(date(2024, 5, 23))   # Buddha Jayanti
    assert is_holiday("2024-10-13")

def test_short_trading_week():
    """Test a single holiday the day after the reference date."""
    context = get_holiday_context(date(2024, 5, 22))
    assert context == HolidayContext(True, 1, "Short Trading Week")
    assert context.to_dict() == {'hasHoliday': True, 'count': 1, 'note': "Short Trading Week"}

def test_festival_week():
    """Test clustered Tihar holidays get the festival label."""
    context = get_holiday_context(datetime(2024, 10, 29, 9, 0))
    assert context.has_holiday
    assert context.count == 3
    assert context.note == "Festival Season (Dashain/Tihar)"

def test_reference_date_is_excluded():
    """Test only days strictly after the reference are counted."""
    context = get_holiday_context(date(2024, 5, 23))
    assert context == HolidayContext(False, 0, None)

def test_no_holiday_week():
    """Test a week without holidays."""
    context = get_holiday_context(date(2024, 6, 13))
    assert not context.has_holiday
    assert context.count == 0
    assert context.note is None

def test_interrupted_week_outside_festival_months(monkeypatch):
    """Test two holidays outside festival months."""
    monkeypatch.setattr(trading_calendar, 'HOLIDAYS', frozenset({date(2024, 6, 17), date(2024, 6, 18)}))
    context = get_holiday_context(date(2024, 6, 16))
    assert context == HolidayContext(True, 2, "Trading Week interrupted by Holidays")
