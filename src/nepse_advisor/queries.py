"""
Read-side views of the stored tables.

These are the payloads the dashboard serves: the latest batch of each table,
recent evaluations and per-sector or per-symbol histories.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from nepse_advisor.config import (
    DAILY_TOP_TABLE,
    EVALUATION_HISTORY_LIMIT,
    EVALUATION_TABLE,
    PREDICTIONS_TABLE,
    RAW_DATA_TABLE,
    SECTOR_SUMMARY_TABLE,
    TOP_N,
    WEEKLY_BEST_TABLE,
    WEEKLY_WORST_TABLE,
)
from nepse_advisor.records import Evaluation, Prediction, parse_number
from nepse_advisor.store import TableStore

SECTOR_HISTORY_RANGES = ('1D', '1W', '1M', '3M', '6M', '9M', 'YTD', 'LIFETIME')

def latest_batch(rows: List[Dict[str, Any]]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Rows sharing the date of the last appended row."""
    if not rows:
        return None, []
    latest_date = rows[-1].get('Date')
    return latest_date, [row for row in rows if row.get('Date') == latest_date]

def market_row_to_dict(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'symbol': row.get('Symbol'),
        'companyName': row.get('Company Name'),
        'sector': row.get('Sector'),
        'ltp': row.get('LTP'),
        'volume': row.get('Trade Quantity'),
        'percentChange': row.get('% Change'),
        'transactions': row.get('Num Trades') or 0,
        'date': row.get('Date'),
    }

def get_predictions(store: TableStore) -> Tuple[Optional[str], List[Prediction]]:
    """Latest batch of predictions."""
    latest_date, rows = latest_batch(store.read(PREDICTIONS_TABLE))
    return latest_date, [Prediction.from_row(row) for row in rows]

def get_evaluations(store: TableStore, limit: int = EVALUATION_HISTORY_LIMIT) -> List[Evaluation]:
    """Most recent evaluations, newest first."""
    rows = store.read(EVALUATION_TABLE)
    return [Evaluation.from_row(row) for row in reversed(rows)][:limit]

def get_top_performers(
    store: TableStore,
    period: str = 'daily',
    kind: str = 'best',
    limit: int = TOP_N
) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Latest best or worst performers for a day or week.

    Only the daily best list is stored; the daily worst list is ranked from the
    latest raw snapshot.
    """
    if period not in ('daily', 'weekly'):
        raise ValueError(f"Unknown period: {period}")
    if kind not in ('best', 'worst'):
        raise ValueError(f"Unknown type: {kind}")

    if period == 'weekly':
        table = WEEKLY_BEST_TABLE if kind == 'best' else WEEKLY_WORST_TABLE
        latest_date, rows = latest_batch(store.read(table))
    elif kind == 'best':
        latest_date, rows = latest_batch(store.read(DAILY_TOP_TABLE))
    else:
        latest_date, rows = latest_batch(store.read(RAW_DATA_TABLE))
        rows = sorted(rows, key=lambda r: _sort_change(r.get('% Change')))

    return latest_date, [market_row_to_dict(row) for row in rows[:limit]]

def _sort_change(value: Any) -> float:
    change = parse_number(value, '% Change', default=0.0, allow_nan=True)
    return 0.0 if change != change else change

def get_sector_performance(store: TableStore) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Latest sector summary, best average change first."""
    latest_date, rows = latest_batch(store.read(SECTOR_SUMMARY_TABLE))
    data = [
        {
            'sector': row.get('Sector'),
            'avgChange': row.get('Avg Change'),
            'totalVolume': row.get('Total Volume'),
            'date': row.get('Date'),
        }
        for row in rows
    ]
    data.sort(key=lambda d: _sort_change(d['avgChange']), reverse=True)
    return latest_date, data

def range_start(range_: str, today: date) -> pd.Timestamp:
    """First date included in a sector history range."""
    now = pd.Timestamp(today).normalize()
    range_ = range_.upper()
    if range_ == '1D':
        return now - pd.Timedelta(days=1)
    if range_ == '1W':
        return now - pd.Timedelta(days=7)
    if range_ == '3M':
        return now - pd.DateOffset(months=3)
    if range_ == '6M':
        return now - pd.DateOffset(months=6)
    if range_ == '9M':
        return now - pd.DateOffset(months=9)
    if range_ == 'YTD':
        return pd.Timestamp(year=now.year, month=1, day=1)
    if range_ == 'LIFETIME':
        return pd.Timestamp.min
    # 1M or anything else
    return now - pd.DateOffset(months=1)

def get_sector_history(store: TableStore, range_: str = '1M', today: Optional[date] = None) -> Dict[str, Any]:
    """Average change per sector per day, shaped for a line chart.

    Returns:
        Dict with sorted date ``labels`` and one dataset per sector whose
        ``data`` holds None on dates without a value
    """
    rows = store.read(SECTOR_SUMMARY_TABLE)
    if not rows:
        return {'labels': [], 'datasets': []}

    df = pd.DataFrame(rows)
    df['parsed_date'] = pd.to_datetime(df['Date'], errors='coerce')
    df = df.dropna(subset=['parsed_date'])
    df = df[df['parsed_date'] >= range_start(range_, today or date.today())]
    if df.empty:
        return {'labels': [], 'datasets': []}

    labels = sorted(df['Date'].unique())
    datasets = []
    for sector, group in df.groupby('Sector', sort=False):
        # First value per date wins
        values = {}
        for row in group.to_dict('records'):
            values.setdefault(row['Date'], parse_number(row['Avg Change'], 'Avg Change', allow_nan=True))
        datasets.append({'label': sector, 'data': [values.get(label) for label in labels]})

    return {'labels': labels, 'datasets': datasets}

def get_stock_history(store: TableStore, symbol: str) -> List[Dict[str, Any]]:
    """Daily price and volume of one symbol, oldest first."""
    rows = [row for row in store.read(RAW_DATA_TABLE) if row.get('Symbol') == symbol]
    history = [
        {
            'date': row.get('Date'),
            'ltp': parse_number(row.get('LTP'), 'LTP'),
            'volume': parse_number(row.get('Trade Quantity'), 'Trade Quantity', default=0.0),
        }
        for row in rows
    ]
    history.sort(key=lambda h: h['date'])
    return history
