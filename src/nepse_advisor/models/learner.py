"""
Self-evaluation of past predictions.

Matured predictions are scored against the latest prices. The signed error of
each one, multiplied by the component scores it was built from, accumulates
into a single batched correction of the model weights.

Evaluation happens in memory; ``LearningEngine.commit`` persists the weight
parameters, then the evaluation batch, and only then replaces the weights.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Union

from nepse_advisor.config import (
    BASE_LEARNING_RATE,
    EVALUATION_TABLE,
    HOLIDAY_LEARNING_RATE_FACTOR,
    MODEL_PARAMS_TABLE,
    PENDING_ADJUSTMENT,
)
from nepse_advisor.models.weights import ModelState, weights_to_rows
from nepse_advisor.records import ActualPrice, Evaluation, ModelWeights, Prediction
from nepse_advisor.trading_calendar import get_holiday_context, to_date
from nepse_advisor.utils import to_fixed

logger = logging.getLogger(__name__)

COMPONENTS = ('momentum', 'volume', 'sector')

@dataclass
class LearningPlan:
    """Evaluations of one batch and the weights they lead to."""
    batch_date: date
    evaluations: List[Evaluation] = field(default_factory=list)
    weights: Optional[ModelWeights] = None  # None: nothing to commit
    mean_error: Optional[float] = None

class LearningEngine:
    """Evaluates matured predictions and nudges the model weights."""
    
    def __init__(
        self,
        state: ModelState,
        store,
        clock: Callable[[], datetime] = datetime.now,
        base_learning_rate: float = BASE_LEARNING_RATE
    ):
        """Initialize the engine.
        
        Args:
            state: Model weights owner
            store: Table store receiving evaluations and weight parameters
            clock: Source of the current reference time
            base_learning_rate: Learning rate outside holiday weeks
        """
        self.state = state
        self.store = store
        self.clock = clock
        self.base_learning_rate = base_learning_rate

    def learning_rate(self, reference_date: Union[date, datetime]) -> float:
        """Effective learning rate, halved when the evaluated week had holidays."""
        period_start = to_date(reference_date) - timedelta(days=7)
        if get_holiday_context(period_start).has_holiday:
            logger.info("Last week was a holiday week. Reducing learning rate.")
            return self.base_learning_rate * HOLIDAY_LEARNING_RATE_FACTOR
        return self.base_learning_rate

    def already_evaluated(self, batch_date: date) -> bool:
        """Whether an evaluation batch is already stored for the date."""
        date_str = batch_date.isoformat()
        return any(row.get('Date') == date_str for row in self.store.read(EVALUATION_TABLE))

    def evaluate(
        self,
        past_predictions: Iterable[Prediction],
        current_actuals: Iterable[ActualPrice],
        reference_date: Optional[Union[date, datetime]] = None
    ) -> LearningPlan:
        """Score past predictions against actual prices.

        Nothing is written and the weights are left alone; the returned plan
        carries the proposed weights for ``commit``. Predictions without a
        matching actual price are skipped.

        Args:
            past_predictions: Matured predictions
            current_actuals: Latest price per symbol (first match wins)
            reference_date: Evaluation date (clock when None)

        Returns:
            Plan with one evaluation per matched prediction. It proposes no
            weights when nothing matched or the date was already evaluated.

        Raises:
            StoreError: If the evaluation table cannot be read
        """
        if reference_date is None:
            reference_date = self.clock()
        plan = LearningPlan(batch_date=to_date(reference_date))

        logger.info("Evaluating past predictions...")

        actual_by_symbol: Dict[str, ActualPrice] = {}
        for actual in current_actuals:
            actual_by_symbol.setdefault(actual.symbol, actual)

        total_error = 0.0
        count = 0
        adjustments = {name: 0.0 for name in COMPONENTS}

        for pred in past_predictions:
            actual = actual_by_symbol.get(pred.symbol)
            if actual is None:
                continue
            actual_price = actual.ltp
            if actual_price == 0:
                logger.warning(f"Skipping {pred.symbol}: actual price is zero")
                continue

            # Positive when the market did better than predicted
            error = (actual_price - pred.predicted_price) / actual_price
            abs_error = abs(error)

            total_error += abs_error
            count += 1

            for name in COMPONENTS:
                score = getattr(pred.reason, name)
                if score is not None:
                    adjustments[name] += error * score

            plan.evaluations.append(Evaluation(
                date=plan.batch_date,
                symbol=pred.symbol,
                actual_outcome=actual_price,
                error_metric=to_fixed(abs_error * 100, 2) + '%',
                adjustment=PENDING_ADJUSTMENT,
            ))

        if count == 0:
            logger.info("No predictions matched current prices. Weights unchanged.")
            return plan

        if self.already_evaluated(plan.batch_date):
            logger.info(f"Evaluations for {plan.batch_date} already recorded. Skipping weight update.")
            return plan

        plan.mean_error = total_error / count
        plan.weights = self.state.propose(adjustments, count, self.learning_rate(reference_date))
        return plan

    def commit(self, plan: LearningPlan) -> bool:
        """Persist a plan and make its weights current.

        The ``model_params`` rows are written before the evaluation batch, so
        a failure in between leaves the date unevaluated and a retry redoes
        the whole update. The weights change only after both writes.

        Returns:
            True if the weights were updated

        Raises:
            StoreError: If either table cannot be written
        """
        if plan.weights is None:
            return False

        def persist(weights: ModelWeights) -> bool:
            self.store.append(MODEL_PARAMS_TABLE, weights_to_rows(weights, plan.batch_date), plan.batch_date)
            rows = [e.to_row() for e in plan.evaluations]
            if not self.store.append(EVALUATION_TABLE, rows, plan.batch_date):
                logger.info(f"Evaluations for {plan.batch_date} already recorded. Skipping weight update.")
                return False
            return True

        if not self.state.update(plan.weights, persist):
            return False
        logger.info(
            f"Model evaluated. Mean error: {to_fixed(plan.mean_error * 100, 2)}%. "
            f"New weights: {plan.weights.as_dict()}"
        )
        return True

    def evaluate_and_learn(
        self,
        past_predictions: Iterable[Prediction],
        current_actuals: Iterable[ActualPrice],
        reference_date: Optional[Union[date, datetime]] = None
    ) -> List[Evaluation]:
        """Score past predictions and commit the weight update right away.

        Raises:
            StoreError: If the evaluations or weights cannot be persisted
        """
        plan = self.evaluate(past_predictions, current_actuals, reference_date)
        self.commit(plan)
        return plan.evaluations
