"""
Outcome metrics for win/loss forecasts.

Accuracy, false-positive and false-negative rates treat a predicted win as
the positive class. Brier score and log loss score the probabilities
themselves.
"""

from __future__ import annotations

from typing import Dict

import numpy as np


def _as_binary(values) -> np.ndarray:
    return np.asarray(values, dtype=int)


def accuracy(predicted, observed) -> float:
    predicted = _as_binary(predicted)
    observed = _as_binary(observed)
    if len(observed) == 0:
        return float("nan")
    return float(np.mean(predicted == observed))


def false_positive_rate(predicted, observed) -> float:
    """Share of observed losses that were predicted as wins."""
    predicted = _as_binary(predicted)
    observed = _as_binary(observed)
    negatives = observed == 0
    if not negatives.any():
        return float("nan")
    return float(np.mean(predicted[negatives] == 1))


def false_negative_rate(predicted, observed) -> float:
    """Share of observed wins that were predicted as losses."""
    predicted = _as_binary(predicted)
    observed = _as_binary(observed)
    positives = observed == 1
    if not positives.any():
        return float("nan")
    return float(np.mean(predicted[positives] == 0))


def brier_score(probabilities, observed) -> float:
    """
    Brier Score = (1/N) * sum((p - y)^2)

    Lower is better. Perfect = 0, coin flip = 0.25
    """
    p = np.asarray(probabilities, dtype=float)
    y = np.asarray(observed, dtype=float)
    return float(np.mean((p - y) ** 2))


def log_loss(probabilities, observed, eps: float = 1e-7) -> float:
    p = np.clip(np.asarray(probabilities, dtype=float), eps, 1 - eps)
    y = np.asarray(observed, dtype=float)
    return float(-np.mean(y * np.log(p) + (1 - y) * np.log(1 - p)))


def outcome_metrics(probabilities, observed, threshold: float = 0.5) -> Dict[str, float]:
    """
    Summarise a probability forecast against observed outcomes.

    Args:
        probabilities: Forecast win probabilities [N]
        observed: Actual outcomes (0 or 1) [N]
        threshold: Probability at or above which a win is predicted

    Returns:
        Dict with accuracy, false_positive_rate, false_negative_rate,
        brier_score, log_loss and n
    """
    p = np.asarray(probabilities, dtype=float)
    y = _as_binary(observed)
    if p.shape != y.shape:
        raise ValueError(f"probabilities shape {p.shape} does not match outcomes shape {y.shape}")
    predicted = (p >= threshold).astype(int)
    return {
        "accuracy": accuracy(predicted, y),
        "false_positive_rate": false_positive_rate(predicted, y),
        "false_negative_rate": false_negative_rate(predicted, y),
        "brier_score": brier_score(p, y),
        "log_loss": log_loss(p, y),
        "n": int(len(y)),
    }
