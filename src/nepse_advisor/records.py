"""
Typed records and the parsing boundary for table rows.

Rows come back from the table store as text keyed by column header. Every
conversion from a row to a record goes through ``parse_number`` and
``parse_date`` so the scoring code only ever sees floats and dates.
"""

import json
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import numpy as np

from nepse_advisor.config import DEFAULT_WEIGHTS
from nepse_advisor.trading_calendar import to_date
from nepse_advisor.utils import to_fixed

_REQUIRED = object()

class MalformedRecordError(ValueError):
    """A row field that must be numeric (or a date) could not be parsed."""

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False

def parse_number(value: Any, field_name: str, default: Any = _REQUIRED, allow_nan: bool = False) -> float:
    """Parse a numeric cell.

    Args:
        value: Cell value (text or number)
        field_name: Column name used in error messages
        default: Value for blank cells; blank cells are an error when omitted
        allow_nan: Accept NaN values instead of raising

    Returns:
        Parsed float

    Raises:
        MalformedRecordError: If the cell is missing or not a number
    """
    if _is_blank(value):
        if default is _REQUIRED:
            raise MalformedRecordError(f"Missing value for '{field_name}'")
        return default

    if isinstance(value, bool):
        raise MalformedRecordError(f"Non-numeric value for '{field_name}': {value!r}")

    if isinstance(value, (int, float, np.number)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(',', ''))
        except ValueError:
            raise MalformedRecordError(f"Non-numeric value for '{field_name}': {value!r}") from None
    else:
        raise MalformedRecordError(f"Non-numeric value for '{field_name}': {value!r}")

    if math.isnan(number) and not allow_nan:
        # Empty cells read back from Parquet as NaN
        if default is not _REQUIRED and not isinstance(value, str):
            return default
        raise MalformedRecordError(f"NaN value for '{field_name}'")
    return number

def parse_date(value: Any, field_name: str = 'Date') -> date:
    """Parse a date cell, raising ``MalformedRecordError`` on bad input."""
    try:
        return to_date(value)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"Invalid date for '{field_name}': {value!r}") from e

def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()

@dataclass(frozen=True)
class MarketObservation:
    """One symbol on one trading day, as produced by the market feed."""
    symbol: str
    company_name: str
    sector: str
    ltp: float
    volume: float
    percent_change: float = float('nan')
    transactions: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MarketObservation':
        """Build from a feed payload using camelCase keys."""
        return cls(
            symbol=_text(data.get('symbol')),
            company_name=_text(data.get('companyName')),
            sector=_text(data.get('sector')),
            ltp=parse_number(data.get('ltp'), 'ltp'),
            volume=parse_number(data.get('volume'), 'volume', default=0.0),
            percent_change=parse_number(data.get('percentChange'), 'percentChange', default=float('nan'), allow_nan=True),
            transactions=int(parse_number(data.get('transactions'), 'transactions', default=0.0)),
        )

    def to_row(self, batch_date: date) -> Dict[str, Any]:
        return {
            'Date': batch_date.isoformat(),
            'Symbol': self.symbol,
            'Company Name': self.company_name,
            'Sector': self.sector,
            'LTP': self.ltp,
            'Trade Quantity': self.volume,
            'Num Trades': self.transactions,
            '% Change': self.percent_change,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'companyName': self.company_name,
            'sector': self.sector,
            'ltp': self.ltp,
            'volume': self.volume,
            'percentChange': self.percent_change,
            'transactions': self.transactions,
        }

@dataclass(frozen=True)
class HistoryPoint:
    """A parsed row of the raw daily table."""
    date: date
    symbol: str
    company_name: str
    sector: str
    ltp: float
    volume: float
    percent_change: float

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'HistoryPoint':
        # Blank volume and percent change cells count as zero
        return cls(
            date=parse_date(row.get('Date')),
            symbol=_text(row.get('Symbol')),
            company_name=_text(row.get('Company Name')),
            sector=_text(row.get('Sector')),
            ltp=parse_number(row.get('LTP'), 'LTP'),
            volume=parse_number(row.get('Trade Quantity'), 'Trade Quantity', default=0.0),
            percent_change=parse_number(row.get('% Change'), '% Change', default=0.0, allow_nan=True),
        )

@dataclass(frozen=True)
class WeeklyAggregate:
    """Trailing-week performance of one symbol."""
    symbol: str
    company_name: str
    sector: str
    ltp: float
    volume: float
    percent_change: float  # week-over-week %, 2 decimals
    transactions: int = 0

    def to_row(self, batch_date: date) -> Dict[str, Any]:
        return {
            'Date': batch_date.isoformat(),
            'Symbol': self.symbol,
            'Company Name': self.company_name,
            'Sector': self.sector,
            'LTP': self.ltp,
            'Trade Quantity': self.volume,
            'Num Trades': self.transactions,
            '% Change': to_fixed(self.percent_change, 2),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'companyName': self.company_name,
            'sector': self.sector,
            'ltp': self.ltp,
            'volume': self.volume,
            'percentChange': to_fixed(self.percent_change, 2),
            'transactions': self.transactions,
        }

@dataclass(frozen=True)
class ModelWeights:
    """Ensemble weights; the only state the engine learns."""
    momentum: float = DEFAULT_WEIGHTS['momentum']
    volume: float = DEFAULT_WEIGHTS['volume']
    sector: float = DEFAULT_WEIGHTS['sector']

    def total_magnitude(self) -> float:
        return abs(self.momentum) + abs(self.volume) + abs(self.sector)

    def normalized(self) -> 'ModelWeights':
        """Scale so the absolute weights sum to 1 (unchanged when all zero)."""
        total = self.total_magnitude()
        if total > 0:
            return ModelWeights(self.momentum / total, self.volume / total, self.sector / total)
        return self

    def as_dict(self) -> Dict[str, float]:
        return {'momentum': self.momentum, 'volume': self.volume, 'sector': self.sector}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelWeights':
        defaults = cls()
        return cls(
            momentum=parse_number(data.get('momentum'), 'momentum', default=defaults.momentum),
            volume=parse_number(data.get('volume'), 'volume', default=defaults.volume),
            sector=parse_number(data.get('sector'), 'sector', default=defaults.sector),
        )

@dataclass(frozen=True)
class PredictionReason:
    """Component scores and the weights a prediction used.

    Scores are kept as computed and rendered with 2 decimals when stored.
    """
    momentum: Optional[float]
    volume: Optional[float]
    sector: Optional[float]
    weights: Optional[ModelWeights] = None
    note: Optional[str] = None
    holiday_effect: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'momentum': None if self.momentum is None else to_fixed(self.momentum, 2),
            'volume': None if self.volume is None else to_fixed(self.volume, 2),
            'sector': None if self.sector is None else to_fixed(self.sector, 2),
            'weights': None if self.weights is None else self.weights.as_dict(),
        }
        if self.note:
            data['note'] = self.note
        data['holidayEffect'] = self.holiday_effect
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'))

    @classmethod
    def from_json(cls, text: Any) -> 'PredictionReason':
        """Parse the stored reason; a blank cell carries no component scores."""
        if _is_blank(text):
            return cls(None, None, None)
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise MalformedRecordError(f"Invalid JSON for 'Reason': {text!r}") from e
        if not isinstance(data, dict):
            raise MalformedRecordError(f"Invalid JSON object for 'Reason': {text!r}")

        weights = data.get('weights')
        return cls(
            momentum=parse_number(data.get('momentum'), 'reason.momentum', default=None),
            volume=parse_number(data.get('volume'), 'reason.volume', default=None),
            sector=parse_number(data.get('sector'), 'reason.sector', default=None),
            weights=ModelWeights.from_dict(weights) if isinstance(weights, dict) else None,
            note=data.get('note'),
            holiday_effect=bool(data.get('holidayEffect', False)),
        )

@dataclass(frozen=True)
class Prediction:
    """Next-week direction call for one symbol."""
    date: date
    symbol: str
    company_name: str
    sector: str
    prediction: str
    confidence: float       # percent, 1 decimal
    predicted_price: float  # 2 decimals
    reason: PredictionReason
    raw_score: Optional[float] = None  # not persisted

    def to_row(self) -> Dict[str, Any]:
        return {
            'Date': self.date.isoformat(),
            'Symbol': self.symbol,
            'Company Name': self.company_name,
            'Sector': self.sector,
            'Prediction': self.prediction,
            'Confidence': to_fixed(self.confidence, 1),
            'Predicted Price': to_fixed(self.predicted_price, 2),
            'Reason': self.reason.to_json(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Prediction':
        return cls(
            date=parse_date(row.get('Date')),
            symbol=_text(row.get('Symbol')),
            company_name=_text(row.get('Company Name')),
            sector=_text(row.get('Sector')),
            prediction=_text(row.get('Prediction')),
            confidence=parse_number(row.get('Confidence'), 'Confidence', default=0.0),
            predicted_price=parse_number(row.get('Predicted Price'), 'Predicted Price'),
            reason=PredictionReason.from_json(row.get('Reason')),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'date': self.date.isoformat(),
            'symbol': self.symbol,
            'companyName': self.company_name,
            'sector': self.sector,
            'prediction': self.prediction,
            'confidence': to_fixed(self.confidence, 1),
            'predictedPrice': to_fixed(self.predicted_price, 2),
            'reason': self.reason.to_dict(),
        }
        if self.raw_score is not None:
            data['rawScore'] = self.raw_score
        return data

@dataclass(frozen=True)
class Evaluation:
    """Audit record of one matured prediction scored against the market."""
    date: date
    symbol: str
    actual_outcome: float
    error_metric: str
    adjustment: str

    def to_row(self) -> Dict[str, Any]:
        return {
            'Date': self.date.isoformat(),
            'Symbol': self.symbol,
            'Actual Outcome': self.actual_outcome,
            'Error Metric': self.error_metric,
            'Adjustment': self.adjustment,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Evaluation':
        return cls(
            date=parse_date(row.get('Date')),
            symbol=_text(row.get('Symbol')),
            actual_outcome=parse_number(row.get('Actual Outcome'), 'Actual Outcome'),
            error_metric=_text(row.get('Error Metric')),
            adjustment=_text(row.get('Adjustment')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'symbol': self.symbol,
            'actualOutcome': self.actual_outcome,
            'errorMetric': self.error_metric,
            'adjustment': self.adjustment,
        }

@dataclass(frozen=True)
class ActualPrice:
    """Latest known price of a symbol at evaluation time."""
    symbol: str
    ltp: float
