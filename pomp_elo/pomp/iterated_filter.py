"""
Iterated filtering (IF2) for local maximum-likelihood search.

Every particle carries its own copy of the estimated parameters. Before each
game the copies receive Gaussian random-walk noise on the estimation scale,
and they are resampled together with the latent strengths, so parameter
values consistent with the data survive. Noise shrinks geometrically with a
cooling schedule: with ``cooling_fraction_50 = 0.5`` the perturbation scale
is halved after 50 iterations. The swarm mean after each pass becomes the
next iteration's parameter vector.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..models.game import ObservationSeries
from ..models.params import ParameterVector, from_estimation_scale, to_estimation_scale
from .resampling import DegenerateFilterError, get_resampler, weigh_particles
from .variants import PompModel

logger = logging.getLogger(__name__)


@dataclass
class IteratedFilterConfig:
    """Configuration for one iterated-filtering run."""

    n_iterations: int = 50
    n_particles: int = 1000
    cooling_fraction_50: float = 0.5
    # Estimation-scale random-walk sd per parameter; empty -> model defaults.
    # A parameter with sd 0 is held fixed.
    rw_sd: Dict[str, float] = field(default_factory=dict)
    resampling: str = "systematic"
    tol: float = 1e-17

    def __post_init__(self):
        if self.n_iterations < 1:
            raise ValueError(f"n_iterations must be >= 1, got {self.n_iterations}")
        if self.n_particles < 1:
            raise ValueError(f"n_particles must be >= 1, got {self.n_particles}")
        if not 0.0 < self.cooling_fraction_50 <= 1.0:
            raise ValueError(
                f"cooling_fraction_50 must be in (0, 1], got {self.cooling_fraction_50}"
            )
        for name, sd in self.rw_sd.items():
            if sd < 0:
                raise ValueError(f"rw_sd for {name} must be >= 0, got {sd}")


@dataclass
class IteratedFilterResult:
    """Final parameters plus the per-iteration trace."""

    params: ParameterVector
    trace: pd.DataFrame
    estimated: Tuple[str, ...]

    @property
    def n_degenerate(self) -> int:
        return int(self.trace["degenerate"].sum())

    @property
    def loglik(self) -> float:
        """Log-likelihood of the last non-degenerate iteration (perturbed filter)."""
        finite = self.trace.loc[np.isfinite(self.trace["loglik"]), "loglik"]
        return float(finite.iloc[-1]) if len(finite) else -math.inf

    def converged(self, window: int = 10, tol: float = 2.0) -> bool:
        """
        Rough stabilisation check on the tail of the trace.

        True when the last ``window`` iterations are all non-degenerate and
        their log-likelihoods span less than ``tol``. Iterated filtering is a
        stochastic search, so a False here is a diagnostic, not an error.
        """
        tail = self.trace[self.trace["iteration"] > 0].tail(window)
        if len(tail) < window or tail["degenerate"].any():
            return False
        return float(tail["loglik"].max() - tail["loglik"].min()) < tol


class IteratedFilter:
    """Perturbed particle filter iterated toward a local likelihood maximum."""

    def __init__(self, model: PompModel, config: Optional[IteratedFilterConfig] = None):
        self.model = model
        self.config = config or IteratedFilterConfig()
        self._resample = get_resampler(self.config.resampling)

        rw_sd = self.config.rw_sd or model.default_rw_sd()
        unknown = set(rw_sd) - set(model.parameter_names)
        if unknown:
            raise ValueError(
                f"rw_sd names parameters the {model.variant.value} variant does not use: {sorted(unknown)}"
            )
        self.rw_sd = {name: float(sd) for name, sd in rw_sd.items() if sd > 0}

    @property
    def estimated(self) -> Tuple[str, ...]:
        return tuple(name for name in self.model.parameter_names if name in self.rw_sd)

    def cooling_factor(self, iteration: int, step: int, n_steps: int) -> float:
        """Perturbation multiplier at ``step`` of zero-based ``iteration``."""
        exponent = (iteration * n_steps + step) / (50.0 * n_steps)
        return self.config.cooling_fraction_50 ** exponent

    def run(
        self,
        series: ObservationSeries,
        start: ParameterVector,
        seed: Optional[int] = None,
    ) -> IteratedFilterResult:
        """
        Run the configured number of iterations from ``start``.

        Args:
            series: Observed games
            start: Starting parameter vector
            seed: Seed for this run's generator

        Returns:
            IteratedFilterResult with the final parameters and trace
        """
        self.model.check(series)
        errors = start.validate()
        if errors:
            raise ValueError("; ".join(errors))

        rng = np.random.default_rng(seed)
        names = self.estimated
        current = start
        rows: List[Dict] = [self._trace_row(0, current, math.nan, False)]

        for iteration in range(self.config.n_iterations):
            try:
                current, loglik = self._iterate(series, current, iteration, rng, names)
                degenerate = False
            except DegenerateFilterError as exc:
                logger.warning("IF2 iteration %d degenerate: %s", iteration + 1, exc)
                loglik = -math.inf
                degenerate = True
            rows.append(self._trace_row(iteration + 1, current, loglik, degenerate))
            logger.debug("IF2 iteration %d loglik=%.3f", iteration + 1, loglik)

        result = IteratedFilterResult(params=current, trace=pd.DataFrame(rows), estimated=names)
        if not result.converged():
            logger.info("IF2 trace has not stabilised after %d iterations", self.config.n_iterations)
        return result

    def _iterate(
        self,
        series: ObservationSeries,
        params: ParameterVector,
        iteration: int,
        rng: np.random.Generator,
        names: Sequence[str],
    ) -> Tuple[ParameterVector, float]:
        n = self.config.n_particles
        n_steps = len(series)
        transition = self.model.transition
        observation = self.model.observation

        theta = self.model.theta(params, n)
        swarm = {name: to_estimation_scale(name, theta[name]) for name in names}
        team, opponent = transition.initial_state(n)
        loglik = 0.0

        for i in range(n_steps):
            scale = self.cooling_factor(iteration, i, n_steps)
            for name in names:
                swarm[name] = swarm[name] + rng.normal(0.0, self.rw_sd[name] * scale, size=n)
                theta[name] = from_estimation_scale(name, swarm[name])

            covariates = series.covariates_at(i)
            step = transition.step(team, opponent, covariates, theta, rng)
            log_w = observation.log_likelihood(
                series.outcome[i],
                step.team_strength,
                step.opponent_strength,
                covariates,
                theta["home_court_advantage"],
            )
            cond, weights = weigh_particles(log_w, self.config.tol, covariates.time)
            loglik += cond

            idx = self._resample(weights, rng)
            team = step.team_strength[idx]
            opponent = step.opponent_strength[idx]
            for name in names:
                swarm[name] = swarm[name][idx]
                theta[name] = theta[name][idx]

        updated = {name: float(from_estimation_scale(name, np.mean(swarm[name]))) for name in names}
        return params.replace(**updated), loglik

    @staticmethod
    def _trace_row(iteration: int, params: ParameterVector, loglik: float, degenerate: bool) -> Dict:
        row = {"iteration": iteration, "loglik": loglik, "degenerate": degenerate}
        row.update(params.to_dict())
        return row
