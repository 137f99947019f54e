"""Tests for typed records and row parsing."""

import math
from datetime import date

import numpy as np
import pytest

from nepse_advisor.records import (
    Evaluation,
    HistoryPoint,
    MalformedRecordError,
    MarketObservation,
    ModelWeights,
    Prediction,
    PredictionReason,
    parse_date,
    parse_number,
)

def test_parse_number():
    """Test numeric cells from text and numbers."""
    assert parse_number("1,234.5", 'LTP') == 1234.5
    assert parse_number(" 42 ", 'LTP') == 42.0
    assert parse_number(7, 'LTP') == 7.0
    assert parse_number(np.float64(2.5), 'LTP') == 2.5
    assert parse_number("", 'volume', default=0.0) == 0.0
    assert parse_number(None, 'volume', default=None) is None

def test_parse_number_rejects_bad_values():
    """Test malformed numeric cells raise."""
    with pytest.raises(MalformedRecordError):
        parse_number("", 'LTP')
    with pytest.raises(MalformedRecordError):
        parse_number("abc", 'LTP')
    with pytest.raises(MalformedRecordError):
        parse_number(True, 'LTP')
    with pytest.raises(MalformedRecordError):
        parse_number("NaN", 'LTP')

def test_parse_number_nan():
    """Test NaN handling."""
    assert math.isnan(parse_number("NaN", '% Change', allow_nan=True))
    assert parse_number(float('nan'), 'volume', default=0.0) == 0.0

def test_parse_date():
    """Test date cells."""
    assert parse_date("2024-06-20") == date(2024, 6, 20)
    with pytest.raises(MalformedRecordError):
        parse_date("20/06/2024")

def test_market_observation_from_dict():
    """Test building an observation from a feed payload."""
    obs = MarketObservation.from_dict({
        'symbol': ' NABIL ',
        'companyName': 'Nabil Bank Limited',
        'sector': 'Commercial Bank',
        'ltp': '1,050.00',
        'volume': '',
        'percentChange': '',
    })
    assert obs.symbol == "NABIL"
    assert obs.ltp == 1050.0
    assert obs.volume == 0.0
    assert math.isnan(obs.percent_change)
    assert obs.transactions == 0

    row = obs.to_row(date(2024, 6, 20))
    assert row['Date'] == "2024-06-20"
    assert row['Trade Quantity'] == 0.0

def test_history_point_defaults():
    """Test blank volume and change cells count as zero."""
    point = HistoryPoint.from_row({
        'Date': '2024-06-20', 'Symbol': 'NABIL', 'Company Name': 'Nabil Bank', 'Sector': 'Commercial Bank',
        'LTP': '500', 'Trade Quantity': '', '% Change': '',
    })
    assert point.volume == 0.0
    assert point.percent_change == 0.0

    with pytest.raises(MalformedRecordError):
        HistoryPoint.from_row({'Date': '2024-06-20', 'Symbol': 'NABIL', 'LTP': 'n/a'})

def test_model_weights_normalized():
    """Test absolute weights sum to one after normalizing."""
    weights = ModelWeights(0.8, -0.4, 0.8).normalized()
    assert weights.total_magnitude() == pytest.approx(1.0)
    assert weights.volume == pytest.approx(-0.2)
    assert ModelWeights(0.0, 0.0, 0.0).normalized() == ModelWeights(0.0, 0.0, 0.0)

def test_prediction_reason_json():
    """Test the stored reason text."""
    reason = PredictionReason(0.5, -0.25, 0.0, ModelWeights(), None, False)
    assert reason.to_json() == (
        '{"momentum":"0.50","volume":"-0.25","sector":"0.00",'
        '"weights":{"momentum":0.4,"volume":0.3,"sector":0.3},"holidayEffect":false}'
    )

    parsed = PredictionReason.from_json(reason.to_json())
    assert parsed == reason

def test_prediction_reason_keeps_sign_of_small_scores():
    """Test small negative scores are stored as -0.00."""
    reason = PredictionReason(-0.001, 0.004, -0.006)
    data = reason.to_dict()
    assert data['momentum'] == "-0.00"
    assert data['volume'] == "0.00"
    assert data['sector'] == "-0.01"
    assert '"momentum":"-0.00"' in reason.to_json()

def test_prediction_reason_with_note():
    """Test the holiday note is stored only when set."""
    reason = PredictionReason(1.0, 0.0, 0.0, note="Market:  (Short Trading Week)", holiday_effect=True)
    data = reason.to_dict()
    assert list(data) == ['momentum', 'volume', 'sector', 'weights', 'note', 'holidayEffect']
    assert data['note'] == "Market:  (Short Trading Week)"

def test_prediction_reason_blank_and_invalid():
    """Test blank and malformed reason cells."""
    assert PredictionReason.from_json("") == PredictionReason(None, None, None)
    with pytest.raises(MalformedRecordError):
        PredictionReason.from_json("{not json")
    with pytest.raises(MalformedRecordError):
        PredictionReason.from_json("[1, 2]")

def test_prediction_row_round_trip():
    """Test a prediction survives its stored row."""
    pred = Prediction(
        date=date(2024, 6, 20),
        symbol="NABIL",
        company_name="Nabil Bank",
        sector="Commercial Bank",
        prediction="Growth",
        confidence=40.0,
        predicted_price=457.6,
        reason=PredictionReason(1.0, 0.0, 0.0, ModelWeights()),
    )
    row = pred.to_row()
    assert row['Confidence'] == "40.0"
    assert row['Predicted Price'] == "457.60"
    assert Prediction.from_row(row) == pred

def test_evaluation_row():
    """Test evaluation rows."""
    evaluation = Evaluation(date(2024, 6, 20), "NABIL", 110.0, "9.09%", "Pending Batch Update")
    row = evaluation.to_row()
    assert row['Error Metric'] == "9.09%"
    assert Evaluation.from_row({**row, 'Actual Outcome': '110'}) == evaluation
