"""Tests for market aggregation."""

from datetime import date, datetime

import pytest

from nepse_advisor.aggregation import (
    build_histories,
    daily_top_performers,
    latest_prices,
    rank_performers,
    sector_summary,
    sector_trends,
    weekly_performance,
)
from nepse_advisor.records import ActualPrice, MalformedRecordError, MarketObservation, WeeklyAggregate

REFERENCE = datetime(2024, 6, 20, 12, 0)

@pytest.fixture
def raw_rows(make_raw_rows):
    rows = []
    rows += make_raw_rows("NABIL", "2024-06-01", [380, 390], sector="Commercial Bank")
    rows += make_raw_rows("NABIL", "2024-06-16", [400, 410, 420, 430, 440], sector="Commercial Bank")
    rows += make_raw_rows("UPPER", "2024-06-16", [200, 198, 196, 194, 192], sector="Hydropower")
    rows += make_raw_rows("SOLO", "2024-06-20", [50], sector="Hydropower")
    return rows

def test_build_histories(raw_rows):
    """Test histories keep the trailing window, oldest first."""
    histories, profiles = build_histories(list(reversed(raw_rows)), REFERENCE)
    assert list(histories) == ["SOLO", "UPPER", "NABIL"]
    assert [p.ltp for p in histories["NABIL"]] == [400, 410, 420, 430, 440]
    assert histories["NABIL"][0].date == date(2024, 6, 16)
    assert profiles["NABIL"] == ("NABIL Limited", "Commercial Bank")

def test_build_histories_bad_row(make_raw_rows):
    """Test malformed prices inside the window raise."""
    rows = make_raw_rows("NABIL", "2024-06-18", ["abc"])
    with pytest.raises(MalformedRecordError):
        build_histories(rows, REFERENCE)

def test_build_histories_empty():
    assert build_histories([], REFERENCE) == ({}, {})

def test_weekly_performance(raw_rows):
    """Test week-over-week change and total volume."""
    histories, profiles = build_histories(raw_rows, REFERENCE)
    aggregates = {a.symbol: a for a in weekly_performance(histories, profiles, REFERENCE)}

    assert set(aggregates) == {"NABIL", "UPPER"}
    assert aggregates["NABIL"].percent_change == 10.0
    assert aggregates["NABIL"].ltp == 440
    assert aggregates["NABIL"].volume == 5000
    assert aggregates["UPPER"].percent_change == -4.0

def test_weekly_window_excludes_older_points(make_raw_rows):
    """Test only points within seven days of the reference count."""
    rows = make_raw_rows("NABIL", "2024-06-10", [100, 120, 120, 120, 120, 120, 120, 120, 120, 130, 132])
    histories, profiles = build_histories(rows, datetime(2024, 6, 20, 0, 0))
    aggregate = weekly_performance(histories, profiles, datetime(2024, 6, 20, 0, 0))[0]
    # 2024-06-13 is the first point in the week
    assert aggregate.percent_change == 10.0

def test_latest_prices(raw_rows):
    histories, _ = build_histories(raw_rows, REFERENCE)
    assert ActualPrice("NABIL", 440.0) in latest_prices(histories)

def make_aggregate(symbol, change, sector="Others"):
    return WeeklyAggregate(symbol, f"{symbol} Ltd", sector, 100.0, 1000.0, change)

def test_rank_performers_is_stable():
    """Test ties keep their input order."""
    aggregates = [make_aggregate("A", 1.0), make_aggregate("B", 5.0), make_aggregate("C", 1.0), make_aggregate("D", -2.0)]
    best, worst = rank_performers(aggregates, top_n=3)
    assert [a.symbol for a in best] == ["B", "A", "C"]
    assert [a.symbol for a in worst] == ["D", "A", "C"]

def test_sector_trends():
    aggregates = [
        make_aggregate("A", 2.0, "Hydropower"),
        make_aggregate("B", -1.0, "Hydropower"),
        make_aggregate("C", 4.0, "Commercial Bank"),
    ]
    assert sector_trends(aggregates) == {"Hydropower": 0.5, "Commercial Bank": 4.0}

def make_observation(symbol, change, volume, sector="Commercial Bank"):
    return MarketObservation(symbol, f"{symbol} Ltd", sector, 100.0, volume, change)

def test_daily_top_performers():
    """Test ranking by change then volume; missing change ranks as zero."""
    observations = [
        make_observation("A", 1.0, 100),
        make_observation("B", float('nan'), 500),
        make_observation("C", 1.0, 300),
        make_observation("D", -0.5, 900),
    ]
    assert [o.symbol for o in daily_top_performers(observations)] == ["C", "A", "B", "D"]
    assert len(daily_top_performers(observations, top_n=2)) == 2

def test_sector_summary():
    """Test per-sector averages and volumes."""
    observations = [
        make_observation("NABIL", 2.0, 100),
        make_observation("SCB", 1.0, 50),
        make_observation("UPPER", float('nan'), 10, sector="Hydropower"),
        make_observation("NEW", 3.0, 5, sector=""),
    ]
    assert sector_summary(observations) == [
        {'Sector': 'Commercial Bank', 'Avg Change': '1.50', 'Total Volume': 150.0},
        {'Sector': 'Hydropower', 'Avg Change': '0.00', 'Total Volume': 10.0},
        {'Sector': 'Others', 'Avg Change': '3.00', 'Total Volume': 5.0},
    ]
