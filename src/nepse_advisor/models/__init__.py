"""Prediction models package."""

from .weights import ModelState
from .predictor import PredictionEngine, classify
from .learner import LearningEngine, LearningPlan

__all__ = [
    'ModelState',
    'PredictionEngine',
    'LearningEngine',
    'LearningPlan',
    'classify'
]
