"""Shared fixtures for the NEPSE advisor tests."""

from datetime import date, timedelta

import pytest

from nepse_advisor.records import HistoryPoint
from nepse_advisor.store import MemoryTableStore

@pytest.fixture
def make_raw_rows():
    """Build raw daily rows for one symbol on consecutive days."""
    def _make(symbol, start, prices, volumes=None, changes=None, sector="Others", name=None):
        start = date.fromisoformat(start) if isinstance(start, str) else start
        volumes = volumes or [1000] * len(prices)
        changes = changes or [0.0] * len(prices)
        return [
            {
                'Date': (start + timedelta(days=i)).isoformat(),
                'Symbol': symbol,
                'Company Name': name or f"{symbol} Limited",
                'Sector': sector,
                'LTP': price,
                'Trade Quantity': volume,
                'Num Trades': 10,
                '% Change': change,
            }
            for i, (price, volume, change) in enumerate(zip(prices, volumes, changes))
        ]
    return _make

@pytest.fixture
def make_history():
    """Build a list of HistoryPoint records on consecutive days."""
    def _make(prices, volumes=None, changes=None, start=date(2024, 6, 16)):
        volumes = volumes or [1000.0] * len(prices)
        changes = changes or [0.0] * len(prices)
        return [
            HistoryPoint(
                date=start + timedelta(days=i),
                symbol="TEST",
                company_name="Test Limited",
                sector="Others",
                ltp=float(price),
                volume=float(volume),
                percent_change=float(change),
            )
            for i, (price, volume, change) in enumerate(zip(prices, volumes, changes))
        ]
    return _make

class FailingTableStore(MemoryTableStore):
    """Memory store whose writes to the listed tables fail until cleared."""

    def __init__(self, tables=None, failing=()):
        super().__init__(tables)
        self.failing = set(failing)

    def _write_rows(self, table, rows):
        if table in self.failing:
            raise OSError("disk full")
        super()._write_rows(table, rows)

@pytest.fixture
def failing_store():
    """Build a memory store that fails writes to some tables."""
    def _make(failing, tables=None):
        return FailingTableStore(tables, failing)
    return _make
