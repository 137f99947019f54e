"""
Feature extraction for the weekly prediction engine.

Each extractor reads a short trailing window of one symbol's daily history and
returns a score bounded to [-1, 1]. Histories shorter than the window score 0.
"""

import math
from typing import Dict, Iterable, Union

import pandas as pd

from nepse_advisor.config import FEATURE_WINDOW, MOMENTUM_SCALE, SECTOR_TREND_SCALE, VOLUME_RATIO_WEIGHT
from nepse_advisor.records import HistoryPoint, MalformedRecordError
from nepse_advisor.utils import clamp

HISTORY_COLUMNS = ['date', 'ltp', 'volume', 'percent_change']

History = Union[pd.DataFrame, Iterable[HistoryPoint]]

def history_frame(history: History) -> pd.DataFrame:
    """Build a history DataFrame ordered oldest to newest.

    Args:
        history: DataFrame with ``ltp``, ``volume`` and ``percent_change``
            columns, or an iterable of HistoryPoint records already in date order

    Returns:
        DataFrame with the history columns

    Raises:
        ValueError: If a DataFrame is missing required columns
        MalformedRecordError: If a DataFrame holds a non-numeric or NaN price
            or volume, or a non-numeric change
    """
    if isinstance(history, pd.DataFrame):
        missing_cols = {'ltp', 'volume', 'percent_change'} - set(history.columns)
        if missing_cols:
            raise ValueError(f"Missing required columns: {missing_cols}")

        df = history.copy()
        for col in ('ltp', 'volume'):
            values = pd.to_numeric(df[col], errors='coerce')
            if values.isna().any():
                bad = df.loc[values.isna(), col].iloc[0]
                raise MalformedRecordError(f"Invalid {col}: {bad!r}")
            df[col] = values.astype(float)
        # A missing daily change counts as flat
        changes = pd.to_numeric(df['percent_change'], errors='coerce')
        text = df['percent_change'].astype(str).str.strip().str.lower()
        given = df['percent_change'].notna() & ~text.isin(['', 'nan'])
        invalid = changes.isna() & given
        if invalid.any():
            bad = df.loc[invalid, 'percent_change'].iloc[0]
            raise MalformedRecordError(f"Invalid percent_change: {bad!r}")
        df['percent_change'] = changes
        return df

    rows = [
        {'date': p.date, 'ltp': p.ltp, 'volume': p.volume, 'percent_change': p.percent_change}
        for p in history
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)

def calculate_momentum(history: History) -> float:
    """Relative price change over the trailing window, scaled and clamped.

    A 10% move across the window saturates the score at +/-1.
    """
    df = history_frame(history)
    if len(df) < FEATURE_WINDOW:
        return 0.0

    recent = df['ltp'].astype(float).tolist()[-FEATURE_WINDOW:]
    start = recent[0]
    end = recent[-1]
    if start == 0:
        return 0.0
    change = (end - start) / start
    return clamp(change * MOMENTUM_SCALE)

def calculate_volume_score(history: History) -> float:
    """Volume-confirmed direction of the trailing window.

    Each day adds half its volume ratio (day volume / window mean) when the
    price rose and subtracts it when the price fell. Flat days add nothing.
    """
    df = history_frame(history)
    if len(df) < FEATURE_WINDOW:
        return 0.0

    recent = df.iloc[-FEATURE_WINDOW:]
    volumes = recent['volume'].astype(float).tolist()
    changes = recent['percent_change'].astype(float).tolist()

    avg_volume = 0.0
    for volume in volumes:
        avg_volume += volume
    avg_volume /= len(volumes)
    if avg_volume == 0:
        return 0.0

    score = 0.0
    for volume, change in zip(volumes, changes):
        vol_ratio = volume / avg_volume
        if change > 0:
            score += vol_ratio * VOLUME_RATIO_WEIGHT
        elif change < 0:
            score -= vol_ratio * VOLUME_RATIO_WEIGHT

    return clamp(score / len(volumes))

def calculate_sector_score(sector_trend: float) -> float:
    """Scale an average sector % change into [-1, 1].

    Raises:
        MalformedRecordError: If the trend is NaN
    """
    if math.isnan(sector_trend):
        raise MalformedRecordError("Invalid sector trend: nan")
    return clamp(sector_trend / SECTOR_TREND_SCALE)

def calculate_features(history: History, sector_trend: float) -> Dict[str, float]:
    """Compute every component score for one symbol."""
    df = history_frame(history)
    return {
        'momentum': calculate_momentum(df),
        'volume': calculate_volume_score(df),
        'sector': calculate_sector_score(sector_trend),
    }
