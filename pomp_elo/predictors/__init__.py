"""Baseline win-probability models."""

from .base import BasePredictor
from .elo import EloConfig, EloPredictor, build_team_series, elo_history, expected_score, update_ratings
from .logistic import LogisticPredictor

__all__ = [
    "BasePredictor",
    "EloConfig",
    "EloPredictor",
    "LogisticPredictor",
    "build_team_series",
    "elo_history",
    "expected_score",
    "update_ratings",
]
