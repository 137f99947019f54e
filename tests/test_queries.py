"""Tests for the read-side queries."""

from datetime import date

import pytest

from nepse_advisor.config import (
    DAILY_TOP_TABLE,
    EVALUATION_TABLE,
    PREDICTIONS_TABLE,
    RAW_DATA_TABLE,
    SECTOR_SUMMARY_TABLE,
    WEEKLY_WORST_TABLE,
)
from nepse_advisor.queries import (
    get_evaluations,
    get_predictions,
    get_sector_history,
    get_sector_performance,
    get_stock_history,
    get_top_performers,
    latest_batch,
    range_start,
)
from nepse_advisor.records import ModelWeights, Prediction, PredictionReason
from nepse_advisor.store import MemoryTableStore

def market_row(day, symbol, ltp, change, volume=100):
    return {'Date': day, 'Symbol': symbol, 'Company Name': f"{symbol} Ltd", 'Sector': 'Others',
            'LTP': ltp, 'Trade Quantity': volume, 'Num Trades': 5, '% Change': change}

@pytest.fixture
def store():
    prediction = Prediction(
        date(2024, 6, 20), "NABIL", "Nabil Bank", "Commercial Bank", "Growth", 40.0, 457.6,
        PredictionReason(1.0, 0.0, 0.0, ModelWeights()),
    )
    old = Prediction(
        date(2024, 6, 13), "NABIL", "Nabil Bank", "Commercial Bank", "Neutral", 5.0, 421.0,
        PredictionReason(0.1, 0.0, 0.0, ModelWeights()),
    )
    return MemoryTableStore({
        RAW_DATA_TABLE: [
            market_row('2024-06-19', 'NABIL', 430, 1.0),
            market_row('2024-06-20', 'NABIL', 440, 2.3),
            market_row('2024-06-20', 'UPPER', 192, -1.0),
            market_row('2024-06-20', 'NEW', 50, 'NaN'),
        ],
        DAILY_TOP_TABLE: [
            {**market_row('2024-06-19', 'NABIL', 430, 1.0), 'Status': 'best'},
            {**market_row('2024-06-20', 'NABIL', 440, 2.3), 'Status': 'best'},
        ],
        WEEKLY_WORST_TABLE: [market_row('2024-06-20', 'UPPER', 192, '-4.00')],
        PREDICTIONS_TABLE: [old.to_row(), prediction.to_row()],
        EVALUATION_TABLE: [
            {'Date': '2024-06-13', 'Symbol': 'A', 'Actual Outcome': 10, 'Error Metric': '1.00%', 'Adjustment': 'Pending Batch Update'},
            {'Date': '2024-06-20', 'Symbol': 'B', 'Actual Outcome': 20, 'Error Metric': '2.00%', 'Adjustment': 'Pending Batch Update'},
        ],
        SECTOR_SUMMARY_TABLE: [
            {'Date': '2024-05-01', 'Sector': 'Hydropower', 'Avg Change': '0.50', 'Total Volume': 10},
            {'Date': '2024-06-18', 'Sector': 'Hydropower', 'Avg Change': '-1.20', 'Total Volume': 10},
            {'Date': '2024-06-19', 'Sector': 'Hydropower', 'Avg Change': '0.40', 'Total Volume': 10},
            {'Date': '2024-06-19', 'Sector': 'Commercial Bank', 'Avg Change': '1.10', 'Total Volume': 30},
        ],
    })

def test_latest_batch():
    assert latest_batch([]) == (None, [])
    rows = [{'Date': '2024-06-19'}, {'Date': '2024-06-20'}, {'Date': '2024-06-20'}]
    assert latest_batch(rows) == ('2024-06-20', rows[1:])

def test_get_predictions(store):
    """Test only the latest batch is returned."""
    latest_date, predictions = get_predictions(store)
    assert latest_date == '2024-06-20'
    assert [p.prediction for p in predictions] == ["Growth"]
    assert predictions[0].predicted_price == 457.6

def test_get_evaluations(store):
    """Test newest evaluations come first."""
    assert [e.symbol for e in get_evaluations(store)] == ["B", "A"]
    assert [e.symbol for e in get_evaluations(store, limit=1)] == ["B"]

def test_get_top_performers(store):
    """Test stored and derived performer lists."""
    latest_date, best = get_top_performers(store, 'daily', 'best')
    assert latest_date == '2024-06-20'
    assert [row['symbol'] for row in best] == ['NABIL']

    _, worst = get_top_performers(store, 'daily', 'worst')
    assert [row['symbol'] for row in worst] == ['UPPER', 'NEW', 'NABIL']

    _, weekly_worst = get_top_performers(store, 'weekly', 'worst', limit=10)
    assert weekly_worst[0]['percentChange'] == '-4.00'

def test_get_top_performers_invalid(store):
    with pytest.raises(ValueError):
        get_top_performers(store, 'monthly', 'best')
    with pytest.raises(ValueError):
        get_top_performers(store, 'daily', 'middle')

def test_get_sector_performance(store):
    latest_date, rows = get_sector_performance(store)
    assert latest_date == '2024-06-19'
    assert [row['sector'] for row in rows] == ['Commercial Bank', 'Hydropower']

def test_range_start():
    today = date(2024, 6, 20)
    assert range_start('1W', today).date() == date(2024, 6, 13)
    assert range_start('3M', today).date() == date(2024, 3, 20)
    assert range_start('YTD', today).date() == date(2024, 1, 1)
    assert range_start('bogus', today).date() == date(2024, 5, 20)

def test_get_sector_history(store):
    """Test the chart payload fills gaps with None."""
    history = get_sector_history(store, '1W', today=date(2024, 6, 20))
    assert history['labels'] == ['2024-06-18', '2024-06-19']
    datasets = {d['label']: d['data'] for d in history['datasets']}
    assert datasets == {'Hydropower': [-1.2, 0.4], 'Commercial Bank': [None, 1.1]}

    lifetime = get_sector_history(store, 'LIFETIME', today=date(2024, 6, 20))
    assert lifetime['labels'][0] == '2024-05-01'
    assert get_sector_history(MemoryTableStore()) == {'labels': [], 'datasets': []}

def test_get_stock_history(store):
    history = get_stock_history(store, 'NABIL')
    assert history == [
        {'date': '2024-06-19', 'ltp': 430.0, 'volume': 100.0},
        {'date': '2024-06-20', 'ltp': 440.0, 'volume': 100.0},
    ]
    assert get_stock_history(store, 'NONE') == []
