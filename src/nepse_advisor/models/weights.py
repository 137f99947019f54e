"""Persistent model weights and their exclusive-access update."""

import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from nepse_advisor.config import MODEL_PARAMS_TABLE
from nepse_advisor.records import ModelWeights, parse_date, parse_number

logger = logging.getLogger(__name__)

def weights_from_rows(rows: List[Dict[str, Any]]) -> Optional[ModelWeights]:
    """Read the latest dated parameter set from ``model_params`` rows.

    Args:
        rows: Rows with ``Date``, ``Param Name`` and ``Value`` columns

    Returns:
        Weights with defaults for any missing parameter, or None if there are no rows

    Raises:
        MalformedRecordError: If a date or value on the latest date cannot be parsed
    """
    if not rows:
        return None

    dated = [(parse_date(row.get('Date')), row) for row in rows]
    latest = max(d for d, _ in dated)

    values = ModelWeights().as_dict()
    for row_date, row in dated:
        if row_date != latest:
            continue
        name = str(row.get('Param Name', '')).strip()
        if name in values:
            # Later rows for the same date win
            values[name] = parse_number(row.get('Value'), f"model_params.{name}")

    return ModelWeights(**values)

def weights_to_rows(weights: ModelWeights, batch_date: date) -> List[Dict[str, Any]]:
    """Render weights as dated ``model_params`` rows."""
    return [
        {'Date': batch_date.isoformat(), 'Param Name': name, 'Value': value}
        for name, value in weights.as_dict().items()
    ]

class ModelState:
    """Owner of the ensemble weights.

    Prediction reads a snapshot; learning replaces the weights inside a single
    critical section and only after the new values were persisted.
    """
    
    def __init__(self, weights: Optional[ModelWeights] = None):
        """Initialize the state.
        
        Args:
            weights: Starting weights (defaults when None)
        """
        self._weights = weights if weights is not None else ModelWeights()
        self._lock = threading.Lock()

    @classmethod
    def load(cls, store) -> 'ModelState':
        """Load the latest persisted weights, falling back to defaults.

        Args:
            store: Table store holding the ``model_params`` table

        Raises:
            StoreError: If the parameter table cannot be read
        """
        weights = weights_from_rows(store.read(MODEL_PARAMS_TABLE))
        if weights is None:
            state = cls()
            logger.info(f"No existing model params found. Using defaults: {state.snapshot().as_dict()}")
            return state
        logger.info(f"Loaded model weights: {weights.as_dict()}")
        return cls(weights)

    def snapshot(self) -> ModelWeights:
        """Return the current weights."""
        with self._lock:
            return self._weights

    def propose(
        self,
        adjustments: Dict[str, float],
        count: int,
        learning_rate: float
    ) -> Optional[ModelWeights]:
        """Compute a batched correction without applying it.

        Each weight moves by ``(adjustment / count) * learning_rate``; the
        result is scaled so the absolute weights sum to 1.

        Args:
            adjustments: Accumulated error-times-score per component
            count: Number of evaluated predictions behind the adjustments
            learning_rate: Effective learning rate

        Returns:
            The proposed weights, or None when there is nothing to learn from
        """
        if count <= 0:
            return None

        current = self.snapshot()
        return ModelWeights(
            momentum=current.momentum + (adjustments.get('momentum', 0.0) / count) * learning_rate,
            volume=current.volume + (adjustments.get('volume', 0.0) / count) * learning_rate,
            sector=current.sector + (adjustments.get('sector', 0.0) / count) * learning_rate,
        ).normalized()

    def update(
        self,
        weights: ModelWeights,
        commit: Optional[Callable[[ModelWeights], bool]] = None
    ) -> bool:
        """Replace the weights inside the critical section.

        Args:
            weights: New weights
            commit: Called with the new weights before they take effect;
                returning False keeps the old weights

        Returns:
            True if the weights were replaced
        """
        with self._lock:
            if commit is not None and commit(weights) is False:
                return False
            self._weights = weights
            return True
