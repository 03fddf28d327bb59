"""Resampling schemes and weight helpers for the particle filters."""

import math
from typing import Callable, Dict, Tuple

import numpy as np
from scipy.special import logsumexp


class DegenerateFilterError(RuntimeError):
    """Raised when every particle weight collapses at some time step."""

    def __init__(self, time_index: int, max_log_weight: float):
        self.time_index = time_index
        self.max_log_weight = max_log_weight
        super().__init__(
            f"all particle weights collapsed at time {time_index} "
            f"(largest log-weight {max_log_weight:.4g})"
        )


def systematic_resample(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Systematic resampling: one uniform draw, N evenly spaced pointers."""
    n = len(weights)
    positions = (rng.random() + np.arange(n)) / n
    cumulative = np.cumsum(weights)
    cumulative[-1] = 1.0
    return np.searchsorted(cumulative, positions)


def multinomial_resample(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    n = len(weights)
    return rng.choice(n, size=n, replace=True, p=weights)


RESAMPLERS: Dict[str, Callable[[np.ndarray, np.random.Generator], np.ndarray]] = {
    "systematic": systematic_resample,
    "multinomial": multinomial_resample,
}


def get_resampler(name: str):
    try:
        return RESAMPLERS[name]
    except KeyError:
        raise ValueError(f"Unknown resampling scheme: {name}") from None


def effective_sample_size(weights: np.ndarray) -> float:
    """Kish effective sample size of normalised weights."""
    return float(1.0 / np.sum(np.square(weights)))


def weigh_particles(log_weights: np.ndarray, tol: float, time_index: int) -> Tuple[float, np.ndarray]:
    """
    Turn per-particle log-likelihoods into a conditional log-likelihood and
    normalised resampling weights.

    Args:
        log_weights: Log observation density for each particle
        tol: A particle whose weight is below ``tol`` counts as collapsed
        time_index: Time index reported if the ensemble degenerates

    Returns:
        Tuple of (log of the mean weight, normalised weights)
    """
    top = float(np.max(log_weights))
    floor = math.log(tol) if tol > 0 else -math.inf
    if not math.isfinite(top) or top < floor:
        raise DegenerateFilterError(time_index, top)

    cond_loglik = float(logsumexp(log_weights) - math.log(len(log_weights)))
    weights = np.exp(log_weights - top)
    weights /= weights.sum()
    return cond_loglik, weights
