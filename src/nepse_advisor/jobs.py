"""
Scheduled market cycles.

``DailyJob`` records the day's market snapshot with its top performers and
sector summary. ``WeeklyJob`` aggregates the week, scores matured predictions,
updates the model weights and issues the next batch of predictions.

Each job instance runs one cycle at a time. A failed read or write aborts the
cycle without retrying. The weekly cycle computes everything before it writes,
and the learned weights are committed last, so a cycle that fails or is
cancelled leaves the weights as they were.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from nepse_advisor.aggregation import (
    as_datetime,
    build_histories,
    daily_top_performers,
    latest_prices,
    rank_performers,
    sector_summary,
    sector_trends,
    weekly_performance,
)
from nepse_advisor.config import (
    DAILY_TOP_TABLE,
    MATURATION_MAX_DAYS,
    MATURATION_MIN_DAYS,
    PREDICTIONS_TABLE,
    RAW_DATA_TABLE,
    SECTOR_SUMMARY_TABLE,
    STORE_TIMEOUT_SECONDS,
    WEEKLY_BEST_TABLE,
    WEEKLY_WORST_TABLE,
)
from nepse_advisor.feed import MarketFeed
from nepse_advisor.models import LearningEngine, LearningPlan, ModelState, PredictionEngine
from nepse_advisor.records import (
    Evaluation,
    MalformedRecordError,
    ModelWeights,
    Prediction,
    WeeklyAggregate,
    parse_date,
)
from nepse_advisor.store import StoreError, TableStore
from nepse_advisor.trading_calendar import to_date
from nepse_advisor.utils import call_with_timeout

logger = logging.getLogger(__name__)

COMPLETED = "completed"
SKIPPED = "skipped"
FAILED = "failed"
CANCELLED = "cancelled"

@dataclass
class CycleResult:
    """Outcome of one daily or weekly cycle."""
    status: str
    reference_date: date
    error: Optional[str] = None
    observations: int = 0
    best: List[WeeklyAggregate] = field(default_factory=list)
    worst: List[WeeklyAggregate] = field(default_factory=list)
    sector_trends: Dict[str, float] = field(default_factory=dict)
    evaluations: List[Evaluation] = field(default_factory=list)
    predictions: List[Prediction] = field(default_factory=list)
    weights: Optional[ModelWeights] = None

    @property
    def ok(self) -> bool:
        return self.status in (COMPLETED, SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'date': self.reference_date.isoformat(),
            'error': self.error,
            'observations': self.observations,
            'best': [a.to_dict() for a in self.best],
            'worst': [a.to_dict() for a in self.worst],
            'sectorTrends': dict(self.sector_trends),
            'evaluations': [e.to_dict() for e in self.evaluations],
            'predictions': [p.to_dict() for p in self.predictions],
            'weights': None if self.weights is None else self.weights.as_dict(),
        }

def prediction_age_days(made_on: date, reference: Union[date, datetime]) -> int:
    """Whole days between a prediction date and the reference time, rounded up."""
    seconds = abs((as_datetime(reference) - as_datetime(made_on)).total_seconds())
    return math.ceil(seconds / 86400)

def select_matured_predictions(
    rows: List[Dict[str, Any]],
    reference: Union[date, datetime],
    min_days: int = MATURATION_MIN_DAYS,
    max_days: int = MATURATION_MAX_DAYS
) -> List[Prediction]:
    """Parse the stored predictions whose age falls in the maturation window."""
    matured = []
    for row in rows:
        age = prediction_age_days(parse_date(row.get('Date')), reference)
        if min_days <= age <= max_days:
            matured.append(Prediction.from_row(row))
    return matured

class CycleCancelled(Exception):
    """Raised internally when a cancel event is set between cycle phases."""

def _check_cancelled(cancel_event: Optional[threading.Event], phase: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise CycleCancelled(phase)

class WeeklyJob:
    """Weekly aggregation, evaluation and prediction cycle."""
    
    def __init__(
        self,
        store: TableStore,
        state: ModelState,
        clock: Callable[[], datetime] = datetime.now,
        max_workers: int = 1
    ):
        """Initialize the job.
        
        Args:
            store: Table store
            state: Loaded model weights
            clock: Source of the current reference time
            max_workers: Threads used to fan out per-symbol predictions
        """
        self.store = store
        self.state = state
        self.clock = clock
        self.max_workers = max_workers
        self.predictor = PredictionEngine(state, clock=clock)
        self.learner = LearningEngine(state, store, clock=clock)
        self._lock = threading.Lock()

    def run(
        self,
        reference: Optional[Union[date, datetime]] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> CycleResult:
        """Run one weekly cycle.

        Args:
            reference: Reference time of the cycle (clock when None)
            cancel_event: Checked between phases; nothing is written once it is set

        Returns:
            Result of the cycle; store and parsing failures are reported as
            ``failed`` rather than raised
        """
        with self._lock:
            if reference is None:
                reference = self.clock()
            logger.info("Running weekly job: analysis & prediction...")
            try:
                return self._run(reference, cancel_event)
            except CycleCancelled as e:
                logger.warning(f"Weekly job cancelled before {e}")
                return CycleResult(status=CANCELLED, reference_date=to_date(reference))
            except (StoreError, MalformedRecordError) as e:
                logger.error(f"Weekly job failed: {e}")
                return CycleResult(status=FAILED, reference_date=to_date(reference), error=str(e))

    def predict_all(
        self,
        aggregates: List[WeeklyAggregate],
        histories: Dict[str, list],
        trends: Dict[str, float],
        reference: Union[date, datetime],
        weights: Optional[ModelWeights] = None
    ) -> List[Prediction]:
        """Predict every aggregated symbol with one set of weights (current when None)."""
        if weights is None:
            weights = self.state.snapshot()

        def predict_one(stock: WeeklyAggregate) -> Prediction:
            history = histories.get(stock.symbol, [])
            trend = trends.get(stock.sector) or 0.0
            return self.predictor.predict(stock, history, trend, reference_date=reference, weights=weights)

        if self.max_workers > 1 and len(aggregates) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                return list(executor.map(predict_one, aggregates))
        return [predict_one(stock) for stock in aggregates]

    def _run(self, reference: Union[date, datetime], cancel_event: Optional[threading.Event]) -> CycleResult:
        batch_date = to_date(reference)

        raw_rows = self.store.read(RAW_DATA_TABLE)
        if not raw_rows:
            logger.info("No historical data to process.")
            return CycleResult(status=SKIPPED, reference_date=batch_date, weights=self.state.snapshot())

        # Weekly performance aggregation
        histories, profiles = build_histories(raw_rows, reference)
        aggregates = weekly_performance(histories, profiles, reference)
        actuals = latest_prices(histories)
        best, worst = rank_performers(aggregates)
        trends = sector_trends(aggregates)
        logger.info(f"Aggregated weekly performance for {len(aggregates)} symbols")

        # Matured predictions from the previous cycle
        matured = select_matured_predictions(self.store.read(PREDICTIONS_TABLE), reference)

        _check_cancelled(cancel_event, "evaluation")
        if matured:
            logger.info(f"Found {len(matured)} old predictions to evaluate.")
            plan = self.learner.evaluate(matured, actuals, reference)
        else:
            logger.info("No matching old predictions found to evaluate.")
            plan = LearningPlan(batch_date=batch_date)

        _check_cancelled(cancel_event, "prediction")
        logger.info("Starting prediction phase...")
        predictions = self.predict_all(aggregates, histories, trends, reference, weights=plan.weights)

        _check_cancelled(cancel_event, "writing results")
        self.store.append(WEEKLY_BEST_TABLE, [a.to_row(batch_date) for a in best], batch_date)
        self.store.append(WEEKLY_WORST_TABLE, [a.to_row(batch_date) for a in worst], batch_date)
        if predictions:
            logger.info(f"Generated {len(predictions)} predictions.")
            self.store.append(PREDICTIONS_TABLE, [p.to_row() for p in predictions], batch_date)
        self.learner.commit(plan)

        logger.info("Weekly job completed.")
        return CycleResult(
            status=COMPLETED,
            reference_date=batch_date,
            best=best,
            worst=worst,
            sector_trends=trends,
            evaluations=plan.evaluations,
            predictions=predictions,
            weights=self.state.snapshot(),
        )

class DailyJob:
    """Daily snapshot, top performers and sector summary."""
    
    def __init__(
        self,
        store: TableStore,
        feed: MarketFeed,
        clock: Callable[[], datetime] = datetime.now,
        feed_timeout: Optional[float] = STORE_TIMEOUT_SECONDS
    ):
        """Initialize the job.
        
        Args:
            store: Table store
            feed: Market snapshot source
            clock: Source of the current reference time
            feed_timeout: Seconds to wait for the feed
        """
        self.store = store
        self.feed = feed
        self.clock = clock
        self.feed_timeout = feed_timeout
        self._lock = threading.Lock()

    def run(self, reference: Optional[Union[date, datetime]] = None) -> CycleResult:
        """Run one daily cycle."""
        with self._lock:
            if reference is None:
                reference = self.clock()
            batch_date = to_date(reference)
            logger.info("Running daily job: fetching live data...")
            try:
                return self._run(batch_date)
            except FuturesTimeoutError:
                logger.error(f"Daily job failed: market feed timed out after {self.feed_timeout}s")
                return CycleResult(status=FAILED, reference_date=batch_date, error="market feed timed out")
            except (StoreError, MalformedRecordError, OSError) as e:
                logger.error(f"Daily job failed: {e}")
                return CycleResult(status=FAILED, reference_date=batch_date, error=str(e))

    def _run(self, batch_date: date) -> CycleResult:
        for table in (RAW_DATA_TABLE, DAILY_TOP_TABLE, SECTOR_SUMMARY_TABLE):
            self.store.remove_duplicates(table)

        observations = call_with_timeout(self.feed.fetch_live_market_data, self.feed_timeout)
        if not observations:
            logger.error("No data received from the market feed.")
            return CycleResult(status=SKIPPED, reference_date=batch_date)
        logger.info(f"Fetched {len(observations)} records.")

        self.store.append(RAW_DATA_TABLE, [o.to_row(batch_date) for o in observations], batch_date)

        top_rows = []
        for obs in daily_top_performers(observations):
            row = obs.to_row(batch_date)
            row['Status'] = 'best'
            top_rows.append(row)
        self.store.append(DAILY_TOP_TABLE, top_rows, batch_date)

        self.store.append(SECTOR_SUMMARY_TABLE, sector_summary(observations), batch_date)

        logger.info("Daily job completed successfully.")
        return CycleResult(status=COMPLETED, reference_date=batch_date, observations=len(observations))
