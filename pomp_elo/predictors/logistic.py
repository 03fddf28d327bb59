"""Logistic-regression baseline on the per-game covariates."""

from typing import Dict, List, Optional, Sequence

import numpy as np
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from ..models.game import ObservationSeries
from .base import BasePredictor

DEFAULT_FEATURES = ("home", "own_form", "opp_form", "opp_rating")


class LogisticPredictor(BasePredictor):
    """
    Standardised logistic regression of the outcome on game covariates.

    Features missing from any row of the training season are dropped, so
    one class covers every variant's input table.
    """

    def __init__(self, features: Sequence[str] = DEFAULT_FEATURES, C: float = 1.0, random_seed: int = 42):
        super().__init__("logistic")
        self.requested = tuple(features)
        self.C = C
        self.random_seed = random_seed
        self.features: List[str] = []
        self.model = None

    def _matrix(self, series: ObservationSeries) -> np.ndarray:
        columns = series.columns
        return np.column_stack([columns[name] for name in self.features])

    def fit(self, series: ObservationSeries) -> "LogisticPredictor":
        columns = series.columns
        self.features = [name for name in self.requested if np.all(np.isfinite(columns[name]))]
        if not self.features:
            raise ValueError("No complete covariate columns to fit the logistic baseline on")
        if len(np.unique(series.outcome)) < 2:
            raise ValueError("Logistic baseline needs both wins and losses in the training season")

        self.model = make_pipeline(
            StandardScaler(),
            LogisticRegression(C=self.C, max_iter=2000, random_state=self.random_seed),
        )
        self.model.fit(self._matrix(series), series.outcome.astype(int))
        return self

    def predict_proba(self, series: ObservationSeries) -> np.ndarray:
        if self.model is None:
            raise RuntimeError("LogisticPredictor must be fit before predicting")
        return self.model.predict_proba(self._matrix(series))[:, 1]

    def coefficients(self) -> Optional[Dict[str, float]]:
        """Standardised coefficients keyed by feature name."""
        if self.model is None:
            return None
        logit = self.model[-1]
        coefs = {name: float(c) for name, c in zip(self.features, logit.coef_[0])}
        coefs["intercept"] = float(logit.intercept_[0])
        return coefs
