"""
Market aggregation.

Builds per-symbol daily histories from the raw table, weekly performance,
best/worst rankings, sector trends, and the daily top performers and sector
summary.
"""

import logging
import math
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Tuple, Union

import pandas as pd

from nepse_advisor.config import (
    DEFAULT_SECTOR,
    HISTORY_WINDOW_DAYS,
    MIN_WEEKLY_OBSERVATIONS,
    TOP_N,
    WEEKLY_WINDOW_DAYS,
)
from nepse_advisor.records import ActualPrice, HistoryPoint, MarketObservation, WeeklyAggregate, parse_date
from nepse_advisor.utils import round_fixed, to_fixed

logger = logging.getLogger(__name__)

Histories = Dict[str, List[HistoryPoint]]

def as_datetime(value: Union[date, datetime]) -> datetime:
    """Promote a date to midnight; datetimes pass through."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())

def build_histories(
    rows: List[Dict[str, Any]],
    reference: Union[date, datetime],
    window_days: int = HISTORY_WINDOW_DAYS
) -> Tuple[Histories, Dict[str, Tuple[str, str]]]:
    """Group raw daily rows into per-symbol histories.

    Only rows dated within ``window_days`` of the reference time are parsed.
    Symbols keep the order of their first row in the window and each history
    is sorted oldest first.

    Args:
        rows: Rows of the raw daily table
        reference: Current reference time
        window_days: Trailing window to keep

    Returns:
        Tuple of (histories by symbol, (company name, sector) by symbol); the
        profile comes from the symbol's first row in the whole table

    Raises:
        MalformedRecordError: If a row in the window has a bad date or price
    """
    if not rows:
        return OrderedDict(), {}

    df = pd.DataFrame(rows)
    df['parsed_date'] = [parse_date(value) for value in df['Date']]

    profiles: Dict[str, Tuple[str, str]] = {}
    for record in df[['Symbol', 'Company Name', 'Sector']].to_dict('records'):
        profiles.setdefault(record['Symbol'], (record['Company Name'], record['Sector']))

    cutoff = as_datetime(reference) - timedelta(days=window_days)
    in_window = df.loc[[as_datetime(d) >= cutoff for d in df['parsed_date']]]

    histories: Histories = OrderedDict()
    for symbol, group in in_window.groupby('Symbol', sort=False):
        group = group.sort_values('parsed_date', kind='stable')
        histories[symbol] = [HistoryPoint.from_row(record) for record in group.to_dict('records')]

    logger.info(f"Built histories for {len(histories)} symbols from {len(in_window)} rows")
    return histories, profiles

def latest_prices(histories: Histories) -> List[ActualPrice]:
    """Latest price of every symbol with history."""
    return [ActualPrice(symbol, points[-1].ltp) for symbol, points in histories.items() if points]

def weekly_performance(
    histories: Histories,
    profiles: Dict[str, Tuple[str, str]],
    reference: Union[date, datetime],
    window_days: int = WEEKLY_WINDOW_DAYS
) -> List[WeeklyAggregate]:
    """Trailing-week performance per symbol.

    Symbols with fewer than two observations in the week are dropped.
    """
    cutoff = as_datetime(reference) - timedelta(days=window_days)
    aggregates = []

    for symbol, points in histories.items():
        in_week = [p for p in points if as_datetime(p.date) >= cutoff]
        if len(in_week) < MIN_WEEKLY_OBSERVATIONS:
            continue

        start = in_week[0]
        end = in_week[-1]
        if start.ltp == 0:
            logger.warning(f"Skipping {symbol}: zero opening price in weekly window")
            continue
        pct_change = ((end.ltp - start.ltp) / start.ltp) * 100

        total_volume = 0.0
        for point in in_week:
            total_volume += point.volume

        company_name, sector = profiles.get(symbol, (start.company_name, start.sector))
        aggregates.append(WeeklyAggregate(
            symbol=symbol,
            company_name=company_name,
            sector=sector,
            ltp=end.ltp,
            volume=total_volume,
            percent_change=round_fixed(pct_change, 2),
        ))

    return aggregates

def rank_performers(
    aggregates: List[WeeklyAggregate],
    top_n: int = TOP_N
) -> Tuple[List[WeeklyAggregate], List[WeeklyAggregate]]:
    """Best and worst performers by weekly % change (stable on ties)."""
    best = sorted(aggregates, key=lambda a: a.percent_change, reverse=True)[:top_n]
    worst = sorted(aggregates, key=lambda a: a.percent_change)[:top_n]
    return best, worst

def sector_trends(aggregates: List[WeeklyAggregate]) -> Dict[str, float]:
    """Mean weekly % change per sector."""
    changes: Dict[str, List[float]] = OrderedDict()
    for aggregate in aggregates:
        changes.setdefault(aggregate.sector, []).append(aggregate.percent_change)

    trends = OrderedDict()
    for sector, values in changes.items():
        total = 0.0
        for value in values:
            total += value
        trends[sector] = total / len(values)
    return trends

def _change_or_zero(value: float) -> float:
    return 0.0 if value is None or math.isnan(value) else value

def daily_top_performers(observations: List[MarketObservation], top_n: int = TOP_N) -> List[MarketObservation]:
    """Top movers of the day: % change descending, then volume descending."""
    ranked = sorted(
        observations,
        key=lambda o: (_change_or_zero(o.percent_change), o.volume or 0.0),
        reverse=True
    )
    return ranked[:top_n]

def sector_summary(observations: List[MarketObservation]) -> List[Dict[str, Any]]:
    """Average % change and total volume per sector for one day."""
    sectors: Dict[str, Dict[str, float]] = OrderedDict()
    for obs in observations:
        sector = obs.sector or DEFAULT_SECTOR
        totals = sectors.setdefault(sector, {'change': 0.0, 'volume': 0.0, 'count': 0})
        totals['change'] += _change_or_zero(obs.percent_change)
        totals['volume'] += obs.volume or 0.0
        totals['count'] += 1

    return [
        {
            'Sector': sector,
            'Avg Change': to_fixed(totals['change'] / totals['count'], 2),
            'Total Volume': totals['volume'],
        }
        for sector, totals in sectors.items()
    ]
