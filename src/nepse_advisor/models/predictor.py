"""Weekly direction prediction from momentum, volume and sector scores."""

import logging
from datetime import date, datetime
from typing import Callable, Optional, Union

from nepse_advisor.config import (
    CLASSIFICATION_THRESHOLD,
    DEFAULT_SECTOR_BETA,
    DOWNFALL,
    GROWTH,
    HOLIDAY_CONFIDENCE_FACTOR,
    HOLIDAY_DAMPENER,
    HOLIDAY_NOTE_TEMPLATE,
    MAX_PROJECTED_MOVE,
    NEUTRAL,
    SECTOR_BETA,
)
from nepse_advisor.features import (
    History,
    calculate_momentum,
    calculate_sector_score,
    calculate_volume_score,
    history_frame,
)
from nepse_advisor.models.weights import ModelState
from nepse_advisor.records import ModelWeights, Prediction, PredictionReason
from nepse_advisor.trading_calendar import get_holiday_context, to_date
from nepse_advisor.utils import round_fixed

logger = logging.getLogger(__name__)

def classify(raw_score: float, threshold: float = CLASSIFICATION_THRESHOLD) -> str:
    """Map an ensemble score to a direction label (strict thresholds)."""
    if raw_score > threshold:
        return GROWTH
    if raw_score < -threshold:
        return DOWNFALL
    return NEUTRAL

def sector_beta(sector: str) -> float:
    """Momentum sensitivity of a sector."""
    return SECTOR_BETA.get(sector, DEFAULT_SECTOR_BETA)

class PredictionEngine:
    """Ensemble of feature scores weighted by the learned model weights."""
    
    def __init__(self, state: ModelState, clock: Callable[[], datetime] = datetime.now):
        """Initialize the engine.
        
        Args:
            state: Model weights owner
            clock: Source of the current reference time
        """
        self.state = state
        self.clock = clock

    def predict(
        self,
        stock,
        history: History,
        sector_trend: float = 0.0,
        reference_date: Optional[Union[date, datetime]] = None,
        weights: Optional[ModelWeights] = None
    ) -> Prediction:
        """Predict next week's direction for one symbol.

        Args:
            stock: Record with ``symbol``, ``company_name``, ``sector`` and ``ltp``
            history: Daily history of the symbol, oldest first
            sector_trend: Average weekly % change of the symbol's sector
            reference_date: Date the prediction is made on (clock when None)
            weights: Weights to use (current state snapshot when None)

        Returns:
            Prediction record
        """
        if reference_date is None:
            reference_date = self.clock()
        if weights is None:
            weights = self.state.snapshot()

        df = history_frame(history)
        momentum_score = calculate_momentum(df)
        volume_score = calculate_volume_score(df)
        sector_score = calculate_sector_score(sector_trend)
        beta = sector_beta(stock.sector)

        holiday_context = get_holiday_context(reference_date)
        holiday_dampener = 1.0
        holiday_note = None
        if holiday_context.has_holiday:
            holiday_dampener = HOLIDAY_DAMPENER
            holiday_note = HOLIDAY_NOTE_TEMPLATE.format(note=holiday_context.note)

        raw_score = (
            (momentum_score * weights.momentum * beta) +
            (volume_score * weights.volume * holiday_dampener) +
            (sector_score * weights.sector)
        )

        confidence = abs(raw_score)
        if holiday_context.has_holiday:
            confidence *= HOLIDAY_CONFIDENCE_FACTOR

        projected_change = raw_score * MAX_PROJECTED_MOVE * holiday_dampener
        predicted_price = stock.ltp * (1 + projected_change)

        return Prediction(
            date=to_date(reference_date),
            symbol=stock.symbol,
            company_name=stock.company_name,
            sector=stock.sector,
            prediction=classify(raw_score),
            confidence=round_fixed(confidence * 100, 1),
            predicted_price=round_fixed(predicted_price, 2),
            raw_score=raw_score,
            reason=PredictionReason(
                momentum=momentum_score,
                volume=volume_score,
                sector=sector_score,
                weights=weights,
                note=holiday_note,
                holiday_effect=holiday_context.has_holiday,
            ),
        )
