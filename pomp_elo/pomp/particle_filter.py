"""
Bootstrap particle filter for the POMP-ELO models.

Propagates an ensemble of latent strengths game by game, weights each
particle by the Bradley-Terry likelihood of the observed result, and
resamples. The running sum of log mean weights (taken before resampling)
is an unbiased estimator of the likelihood on the natural scale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..models.game import ObservationSeries
from ..models.params import ParameterVector
from .resampling import DegenerateFilterError, effective_sample_size, get_resampler, weigh_particles
from .variants import PompModel

logger = logging.getLogger(__name__)

__all__ = ["DegenerateFilterError", "FilterResult", "ParticleFilter"]


@dataclass
class FilterResult:
    """Output of one particle filter pass."""

    loglik: float
    cond_loglik: np.ndarray
    ess: np.ndarray
    filter_mean_team: np.ndarray
    filter_mean_opponent: np.ndarray
    n_particles: int
    # state name -> (T, N) resampled particles, only when requested
    trajectory: Optional[Dict[str, np.ndarray]] = None

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "time": np.arange(1, len(self.cond_loglik) + 1),
                "cond_loglik": self.cond_loglik,
                "ess": self.ess,
                "filter_mean_team": self.filter_mean_team,
                "filter_mean_opponent": self.filter_mean_opponent,
            }
        )


@dataclass
class ParticleFilter:
    """
    Sequential Monte Carlo likelihood evaluator.

    Attributes:
        model: Variant strategy pair to filter under
        n_particles: Ensemble size
        resampling: 'systematic' or 'multinomial'
        tol: Weight below which a particle counts as collapsed
        save_particles: Keep the resampled ensemble at every step
    """

    model: PompModel
    n_particles: int = 1000
    resampling: str = "systematic"
    tol: float = 1e-17
    save_particles: bool = False
    _resample: object = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.n_particles < 1:
            raise ValueError(f"n_particles must be >= 1, got {self.n_particles}")
        self._resample = get_resampler(self.resampling)

    def run(
        self,
        series: ObservationSeries,
        params: ParameterVector,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> FilterResult:
        """
        Estimate the log-likelihood of ``series`` under ``params``.

        Args:
            series: Observed games, processed in time order
            params: Parameter vector (read-only)
            seed: Seed for a fresh generator when ``rng`` is not given
            rng: Generator to draw from

        Returns:
            FilterResult

        Raises:
            DegenerateFilterError: If every particle weight collapses
        """
        self.model.check(series)
        theta = self.model.theta(params)
        rng = rng if rng is not None else np.random.default_rng(seed)
        transition = self.model.transition
        observation = self.model.observation

        n_steps = len(series)
        cond_loglik = np.empty(n_steps)
        ess = np.empty(n_steps)
        mean_team = np.empty(n_steps)
        mean_opp = np.empty(n_steps)
        saved: Dict[str, List[np.ndarray]] = {"team_strength": [], "opponent_strength": []}

        team, opponent = transition.initial_state(self.n_particles)
        for i in range(n_steps):
            covariates = series.covariates_at(i)
            step = transition.step(team, opponent, covariates, theta, rng)
            log_w = observation.log_likelihood(
                series.outcome[i],
                step.team_strength,
                step.opponent_strength,
                covariates,
                theta["home_court_advantage"],
            )
            cond_loglik[i], weights = weigh_particles(log_w, self.tol, covariates.time)
            ess[i] = effective_sample_size(weights)
            mean_team[i] = float(np.dot(weights, step.team_strength))
            mean_opp[i] = float(np.dot(weights, step.opponent_strength))

            idx = self._resample(weights, rng)
            team = step.team_strength[idx]
            opponent = step.opponent_strength[idx]
            if self.save_particles:
                saved["team_strength"].append(team)
                saved["opponent_strength"].append(opponent)

        loglik = float(np.sum(cond_loglik))
        logger.debug("particle filter: N=%d loglik=%.3f", self.n_particles, loglik)
        return FilterResult(
            loglik=loglik,
            cond_loglik=cond_loglik,
            ess=ess,
            filter_mean_team=mean_team,
            filter_mean_opponent=mean_opp,
            n_particles=self.n_particles,
            trajectory={k: np.vstack(v) for k, v in saved.items()} if self.save_particles else None,
        )
