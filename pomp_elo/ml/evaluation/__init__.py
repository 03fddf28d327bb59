"""Forecast evaluation metrics."""

from .metrics import (
    accuracy,
    brier_score,
    false_negative_rate,
    false_positive_rate,
    log_loss,
    outcome_metrics,
)

__all__ = [
    "accuracy",
    "brier_score",
    "false_negative_rate",
    "false_positive_rate",
    "log_loss",
    "outcome_metrics",
]
