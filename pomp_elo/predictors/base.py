"""Base predictor interface for baseline win-probability models."""

from abc import ABC, abstractmethod
from typing import Dict

import numpy as np

from ..ml.evaluation.metrics import outcome_metrics
from ..models.game import ObservationSeries


class BasePredictor(ABC):
    """Abstract base class for the baseline models the POMP fits are compared to."""

    def __init__(self, name: str):
        """
        Initialize predictor.

        Args:
            name: Name of the predictor model
        """
        self.name = name

    def fit(self, series: ObservationSeries) -> "BasePredictor":
        """Fit on a season. Online models need no fitting."""
        return self

    @abstractmethod
    def predict_proba(self, series: ObservationSeries) -> np.ndarray:
        """
        Pre-game probability that the tracked team wins each game.

        Args:
            series: Season to predict

        Returns:
            Array of win probabilities [T]
        """
        pass

    def evaluate(self, series: ObservationSeries, threshold: float = 0.5) -> Dict[str, float]:
        """Forecast metrics of this predictor against the observed outcomes."""
        metrics = outcome_metrics(self.predict_proba(series), series.outcome, threshold=threshold)
        metrics["model"] = self.name
        return metrics
