"""
Parallel random-restart search over the parameter box.

Each restart draws a uniform starting point, climbs with iterated filtering,
then scores the climbed parameters with several independent particle filter
passes averaged by log-mean-exp. Restarts share no mutable state and are
distributed across a ProcessPoolExecutor with one explicit seed each.
"""

from __future__ import annotations

import logging
import math
import multiprocessing
import threading
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from ..models.game import ObservationSeries
from ..models.params import LikelihoodEstimate, ParameterBounds, ParameterVector
from .iterated_filter import IteratedFilter, IteratedFilterConfig
from .particle_filter import DegenerateFilterError, ParticleFilter
from .variants import PompModel

logger = logging.getLogger(__name__)


class GlobalSearchError(RuntimeError):
    """Raised when no restart produced a usable likelihood estimate."""


def log_mean_exp(
    values: Sequence[float],
    se: bool = False,
) -> Union[float, Tuple[float, float]]:
    """
    Numerically stable ``log(mean(exp(values)))``.

    With ``se=True`` also returns a jackknife standard error, which is NaN
    for fewer than two values or a non-finite estimate.
    """
    x = np.asarray(values, dtype=float)
    n = len(x)
    if n == 0:
        raise ValueError("log_mean_exp needs at least one value")
    with np.errstate(invalid="ignore", divide="ignore"):
        est = float(logsumexp(x) - math.log(n))
        if not se:
            return est
        if n < 2 or not math.isfinite(est):
            return est, math.nan
        jackknife = np.array([logsumexp(np.delete(x, k)) - math.log(n - 1) for k in range(n)])
        if not np.all(np.isfinite(jackknife)):
            return est, math.nan
        return est, float((n - 1) * np.std(jackknife, ddof=1) / math.sqrt(n))


@dataclass
class GlobalSearchConfig:
    """Configuration for the random-restart search."""

    n_starts: int = 20
    n_replicates: int = 10
    replicate_particles: int = 2000
    random_seed: Optional[int] = None
    parallel_workers: int = None  # None = use all CPUs but one

    def __post_init__(self):
        if self.n_starts < 1:
            raise ValueError(f"n_starts must be >= 1, got {self.n_starts}")
        if self.n_replicates < 1:
            raise ValueError(f"n_replicates must be >= 1, got {self.n_replicates}")
        if self.parallel_workers is None:
            self.parallel_workers = max(1, multiprocessing.cpu_count() - 1)


@dataclass
class RestartResult:
    """Outcome of one restart."""

    start_index: int
    seed: int
    start: ParameterVector
    params: Optional[ParameterVector] = None
    estimate: LikelihoodEstimate = field(default_factory=lambda: LikelihoodEstimate(-math.inf))
    replicate_logliks: List[float] = field(default_factory=list)
    trace: Optional[pd.DataFrame] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.params is not None and self.estimate.is_finite

    def to_dict(self, names: Optional[Sequence[str]] = None) -> dict:
        row = {"start_index": self.start_index, "seed": self.seed, "error": self.error}
        row.update({f"start_{k}": v for k, v in self.start.to_dict(names).items()})
        if self.params is not None:
            row.update(self.params.to_dict(names))
        row.update(self.estimate.to_dict())
        return row


@dataclass
class GlobalSearchResult:
    """All restarts and the selected best one."""

    best: RestartResult
    restarts: List[RestartResult]
    parameter_names: Tuple[str, ...]

    @property
    def params(self) -> ParameterVector:
        return self.best.params

    @property
    def estimate(self) -> LikelihoodEstimate:
        return self.best.estimate

    def to_frame(self) -> pd.DataFrame:
        rows = [r.to_dict(self.parameter_names) for r in self.restarts]
        return pd.DataFrame(rows).sort_values("loglik", ascending=False, kind="stable")


def evaluate_likelihood(
    model: PompModel,
    series: ObservationSeries,
    params: ParameterVector,
    n_replicates: int,
    n_particles: int,
    seed: int,
) -> Tuple[LikelihoodEstimate, List[float]]:
    """
    Replicated particle-filter likelihood with log-mean-exp averaging.

    A degenerate replicate contributes ``-inf`` instead of aborting.
    """
    pf = ParticleFilter(model, n_particles=n_particles)
    logliks: List[float] = []
    for r in range(n_replicates):
        try:
            logliks.append(pf.run(series, params, seed=seed + r).loglik)
        except DegenerateFilterError as exc:
            logger.warning("replicate %d degenerate: %s", r, exc)
            logliks.append(-math.inf)
    est, se = log_mean_exp(logliks, se=True)
    return LikelihoodEstimate(loglik=est, se=se, n_replicates=n_replicates), logliks


def _run_restart(
    model: PompModel,
    series: ObservationSeries,
    if_config: IteratedFilterConfig,
    n_replicates: int,
    replicate_particles: int,
    start_index: int,
    start: ParameterVector,
    seed: int,
) -> RestartResult:
    """One unit of parallel work: climb from ``start`` then score the result."""
    result = RestartResult(start_index=start_index, seed=seed, start=start)
    try:
        climbed = IteratedFilter(model, if_config).run(series, start, seed=seed)
        result.params = climbed.params
        result.trace = climbed.trace
        result.estimate, result.replicate_logliks = evaluate_likelihood(
            model, series, climbed.params, n_replicates, replicate_particles, seed + 1
        )
    except (ValueError, FloatingPointError) as exc:
        result.error = f"{type(exc).__name__}: {exc}"
    return result


class GlobalSearchOrchestrator:
    """
    Random-restart maximum-likelihood search.

    Features:
    - Uniform starting points drawn from a seeded generator
    - Restarts run in a ProcessPoolExecutor, sequential fallback
    - Failed or degenerate restarts are recorded, never fatal
    - ``abort()`` stops the search between restarts
    """

    def __init__(
        self,
        model: PompModel,
        bounds: Optional[ParameterBounds] = None,
        if_config: Optional[IteratedFilterConfig] = None,
        config: Optional[GlobalSearchConfig] = None,
    ):
        self.model = model
        self.bounds = bounds or model.default_bounds()
        self.if_config = if_config or IteratedFilterConfig()
        self.config = config or GlobalSearchConfig()
        self._abort = threading.Event()

        unknown = set(self.bounds.names) - set(model.parameter_names)
        if unknown:
            raise ValueError(
                f"bounds name parameters the {model.variant.value} variant does not use: {sorted(unknown)}"
            )

    def abort(self) -> None:
        """Request that no further restarts be started or collected."""
        self._abort.set()

    def draw_starts(self, base: Optional[ParameterVector] = None) -> List[Tuple[int, ParameterVector]]:
        """Starting points paired with their per-restart seed."""
        base_seed = self.config.random_seed if self.config.random_seed is not None else 42
        rng = np.random.default_rng(base_seed)
        starts = self.bounds.sample(self.config.n_starts, rng, base=base)
        return [(base_seed + (i + 1) * 1000, start) for i, start in enumerate(starts)]

    def run(
        self,
        series: ObservationSeries,
        base: Optional[ParameterVector] = None,
        callbacks: Optional[Sequence[Callable[[RestartResult], None]]] = None,
    ) -> GlobalSearchResult:
        """
        Run every restart and return the best.

        Args:
            series: Observed games
            base: Values for parameters not covered by the bounds
            callbacks: Called with each restart as it is collected; a callback
                may call ``abort()`` to stop the search before the next one

        Returns:
            GlobalSearchResult

        Raises:
            GlobalSearchError: If no restart produced a finite likelihood
        """
        self.model.check(series)
        self._abort.clear()
        jobs = [
            (self.model, series, self.if_config, self.config.n_replicates,
             self.config.replicate_particles, idx, start, seed)
            for idx, (seed, start) in enumerate(self.draw_starts(base))
        ]

        n_workers = self.config.parallel_workers
        if n_workers > 1 and len(jobs) > 1:
            try:
                restarts = self._run_parallel(jobs, n_workers, callbacks or [])
            except (RuntimeError, OSError) as exc:
                logger.warning("process pool unavailable (%s); running restarts sequentially", exc)
                restarts = self._run_sequential(jobs, callbacks or [])
        else:
            restarts = self._run_sequential(jobs, callbacks or [])

        restarts.sort(key=lambda r: r.start_index)
        for r in restarts:
            if r.error:
                logger.warning("restart %d failed: %s", r.start_index, r.error)

        best = self.select_best(restarts)
        logger.info(
            "global search: best restart %d loglik=%.3f se=%.3f (%d/%d usable)",
            best.start_index, best.estimate.loglik, best.estimate.se,
            sum(r.ok for r in restarts), len(jobs),
        )
        return GlobalSearchResult(best=best, restarts=restarts, parameter_names=self.model.parameter_names)

    def _run_sequential(self, jobs, callbacks) -> List[RestartResult]:
        restarts = []
        for job in jobs:
            if self._abort.is_set():
                logger.info("global search aborted after %d restarts", len(restarts))
                break
            restarts.append(_run_restart(*job))
            self._notify(callbacks, restarts[-1])
        return restarts

    def _run_parallel(self, jobs, n_workers: int, callbacks) -> List[RestartResult]:
        restarts = []
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(_run_restart, *job) for job in jobs]
            for future in as_completed(futures):
                if self._abort.is_set():
                    for pending in futures:
                        pending.cancel()
                    logger.info("global search aborted after %d restarts", len(restarts))
                    break
                restarts.append(future.result())
                self._notify(callbacks, restarts[-1])
        return restarts

    @staticmethod
    def _notify(callbacks, restart: RestartResult) -> None:
        for callback in callbacks:
            callback(restart)

    @staticmethod
    def select_best(restarts: Sequence[RestartResult]) -> RestartResult:
        """Arg-max of the likelihood estimate, ties broken by lower standard error."""
        usable = [r for r in restarts if r.ok]
        if not usable:
            raise GlobalSearchError(f"none of {len(restarts)} restarts produced a finite likelihood")
        return max(usable, key=lambda r: r.estimate.ranking_key())
