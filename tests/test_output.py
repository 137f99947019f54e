"""Tests for the output module."""

import json
from datetime import date

import pytest
from rich.table import Table

from nepse_advisor.jobs import COMPLETED, CycleResult
from nepse_advisor.output import (
    evaluations_table,
    generate_weekly_report,
    performers_table,
    predictions_table,
    save_json_report,
    weights_table,
)
from nepse_advisor.records import Evaluation, ModelWeights, Prediction, PredictionReason, WeeklyAggregate

@pytest.fixture
def result():
    """Weekly result with one of everything."""
    prediction = Prediction(
        date(2024, 10, 29), "NABIL", "Nabil Bank", "Commercial Bank", "Growth", 39.2, 452.94,
        PredictionReason(1.0, 0.5, 0.0, ModelWeights(), "Market:  (Festival Season (Dashain/Tihar))", True),
        raw_score=0.49,
    )
    return CycleResult(
        status=COMPLETED,
        reference_date=date(2024, 10, 29),
        best=[WeeklyAggregate("NABIL", "Nabil Bank", "Commercial Bank", 440.0, 5000.0, 10.0)],
        worst=[WeeklyAggregate("UPPER", "Upper Tamakoshi", "Hydropower", 192.0, 800.0, -4.0)],
        sector_trends={"Commercial Bank": 10.0, "Hydropower": -4.0},
        evaluations=[Evaluation(date(2024, 10, 29), "NABIL", 440.0, "4.55%", "Pending Batch Update")],
        predictions=[prediction],
        weights=ModelWeights(),
    )

def test_generate_weekly_report(result):
    """Test the markdown report sections."""
    report = generate_weekly_report(result)
    assert report.startswith("# NEPSE Weekly Report")
    assert "## Model Weights" in report
    assert "- Momentum: 0.4000" in report
    assert "| Commercial Bank | 10.00% |" in report
    assert "## Worst Performers" in report
    assert "| UPPER | Hydropower | 192.00 | -4.00% |" in report
    assert "| NABIL | 440.00 | 4.55% |" in report
    assert "| NABIL | Growth | 39.2% | 452.94 |" in report
    assert "_Market:  (Festival Season (Dashain/Tihar))_" in report

def test_generate_weekly_report_skipped():
    """Test a skipped cycle only has the header."""
    report = generate_weekly_report(CycleResult(status="skipped", reference_date=date(2024, 6, 20)))
    assert report == "# NEPSE Weekly Report\n\nGenerated for: 2024-06-20 (skipped)"

def test_tables(result):
    """Test rich tables have one row per record."""
    table = predictions_table(result.predictions)
    assert isinstance(table, Table)
    assert table.row_count == 1
    assert evaluations_table(result.evaluations).row_count == 1
    assert weights_table(ModelWeights()).row_count == 3
    rows = [a.to_dict() for a in result.best]
    assert performers_table(rows, "Best").row_count == 1

def test_save_json_report(tmp_path, result):
    """Test the structured result is written as JSON."""
    path = tmp_path / "weekly.json"
    save_json_report(result.to_dict(), path)
    data = json.loads(path.read_text())
    assert data['status'] == "completed"
    assert data['predictions'][0]['reason']['note'] == "Market:  (Festival Season (Dashain/Tihar))"
    assert data['predictions'][0]['rawScore'] == 0.49
    assert data['weights'] == {'momentum': 0.4, 'volume': 0.3, 'sector': 0.3}
