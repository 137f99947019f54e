"""Report generation and formatting functionality."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from rich.table import Table

from nepse_advisor.config import DOWNFALL, GROWTH
from nepse_advisor.jobs import CycleResult
from nepse_advisor.records import Evaluation, ModelWeights, Prediction
from nepse_advisor.utils import to_fixed

logger = logging.getLogger(__name__)

PREDICTION_STYLES = {GROWTH: "green", DOWNFALL: "red"}

def predictions_table(predictions: List[Prediction], title: str = "Weekly Predictions") -> Table:
    """Build a rich table of predictions."""
    table = Table(title=title)
    table.add_column("Symbol", style="bold", no_wrap=True)
    table.add_column("Sector")
    table.add_column("Prediction")
    table.add_column("Confidence", justify="right")
    table.add_column("Predicted Price", justify="right")
    table.add_column("Momentum", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("Sector Score", justify="right")
    table.add_column("Note")

    for pred in predictions:
        style = PREDICTION_STYLES.get(pred.prediction, "yellow")
        reason = pred.reason.to_dict()
        table.add_row(
            pred.symbol,
            pred.sector,
            f"[{style}]{pred.prediction}[/{style}]",
            f"{to_fixed(pred.confidence, 1)}%",
            to_fixed(pred.predicted_price, 2),
            reason['momentum'] or "-",
            reason['volume'] or "-",
            reason['sector'] or "-",
            pred.reason.note or "",
        )
    return table

def evaluations_table(evaluations: List[Evaluation], title: str = "Prediction Evaluations") -> Table:
    """Build a rich table of evaluations."""
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Symbol", style="bold", no_wrap=True)
    table.add_column("Actual Outcome", justify="right")
    table.add_column("Error", justify="right")
    table.add_column("Adjustment")
    for evaluation in evaluations:
        table.add_row(
            evaluation.date.isoformat(),
            evaluation.symbol,
            to_fixed(evaluation.actual_outcome, 2),
            evaluation.error_metric,
            evaluation.adjustment,
        )
    return table

def performers_table(rows: List[Dict[str, Any]], title: str) -> Table:
    """Build a rich table of top or bottom performers."""
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Symbol", style="bold", no_wrap=True)
    table.add_column("Company")
    table.add_column("Sector")
    table.add_column("LTP", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("% Change", justify="right")
    for i, row in enumerate(rows, 1):
        table.add_row(
            str(i),
            str(row.get('symbol', '')),
            str(row.get('companyName', '')),
            str(row.get('sector', '')),
            str(row.get('ltp', '')),
            str(row.get('volume', '')),
            str(row.get('percentChange', '')),
        )
    return table

def weights_table(weights: ModelWeights) -> Table:
    """Build a rich table of the model weights."""
    table = Table(title="Model Weights")
    table.add_column("Component", style="bold", no_wrap=True)
    table.add_column("Weight", justify="right", no_wrap=True)
    for name, value in weights.as_dict().items():
        table.add_row(name, f"{value:.4f}")
    return table

def generate_weekly_report(result: CycleResult) -> str:
    """Generate a markdown report of a weekly cycle."""
    report = []
    report.append("# NEPSE Weekly Report")
    report.append(f"Generated for: {result.reference_date.isoformat()} ({result.status})")

    if result.weights is not None:
        entry = ["## Model Weights"]
        for name, value in result.weights.as_dict().items():
            entry.append(f"- {name.capitalize()}: {value:.4f}")
        report.append("\n".join(entry))

    if result.sector_trends:
        entry = ["## Sector Trends", "| Sector | Avg Weekly Change |", "|---|---|"]
        for sector, trend in sorted(result.sector_trends.items(), key=lambda x: x[1], reverse=True):
            entry.append(f"| {sector} | {to_fixed(trend, 2)}% |")
        report.append("\n".join(entry))

    for title, aggregates in (("Best Performers", result.best[:10]), ("Worst Performers", result.worst[:10])):
        if not aggregates:
            continue
        entry = [f"## {title}", "| Symbol | Sector | LTP | % Change |", "|---|---|---|---|"]
        for a in aggregates:
            entry.append(f"| {a.symbol} | {a.sector} | {a.ltp:.2f} | {to_fixed(a.percent_change, 2)}% |")
        report.append("\n".join(entry))

    if result.evaluations:
        entry = ["## Evaluations", "| Symbol | Actual | Error |", "|---|---|---|"]
        for e in result.evaluations:
            entry.append(f"| {e.symbol} | {e.actual_outcome:.2f} | {e.error_metric} |")
        report.append("\n".join(entry))

    if result.predictions:
        entry = ["## Predictions", "| Symbol | Prediction | Confidence | Predicted Price |", "|---|---|---|---|"]
        ranked = sorted(result.predictions, key=lambda p: p.confidence, reverse=True)
        for p in ranked:
            line = f"| {p.symbol} | {p.prediction} | {to_fixed(p.confidence, 1)}% | {to_fixed(p.predicted_price, 2)} |"
            entry.append(line)
        if ranked[0].reason.note:
            entry.append(f"\n_{ranked[0].reason.note.strip()}_")
        report.append("\n".join(entry))

    return "\n\n".join(report)

def save_json_report(data: Dict, output_path: Path):
    """Save the structured data to a JSON file."""
    try:
        with open(output_path, 'w') as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        logger.error(f"Error saving JSON report to {output_path}: {e}")
