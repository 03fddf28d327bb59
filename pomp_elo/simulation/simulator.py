"""
Trajectory simulator for fitted POMP-ELO models.

Draws full season trajectories (latent strengths plus generated outcomes)
at a fixed parameter vector for diagnostics: trend overlays against the
observed season and outcome-accuracy metrics. Results never feed back into
estimation.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed
import logging
import multiprocessing

import numpy as np
import pandas as pd

from ..ml.evaluation.metrics import accuracy, outcome_metrics
from ..models.game import ObservationSeries
from ..models.params import ParameterVector
from ..pomp.variants import PompModel

logger = logging.getLogger(__name__)

TRAJECTORY_FIELDS = ("team_strength", "opponent_strength", "expected_score", "win_probability", "outcome")


@dataclass
class SimulationConfig:
    """Configuration for trajectory simulation."""

    num_simulations: int = 100
    random_seed: Optional[int] = None
    parallel_workers: int = None  # None = use all CPUs but one
    batch_size: int = 50  # Trajectories per batch

    def __post_init__(self):
        if self.num_simulations < 1:
            raise ValueError(f"num_simulations must be >= 1, got {self.num_simulations}")
        if self.parallel_workers is None:
            self.parallel_workers = max(1, multiprocessing.cpu_count() - 1)


@dataclass
class SimulationResult:
    """Simulated trajectories, one row per replicate and one column per game."""

    time: np.ndarray
    observed: np.ndarray
    team_strength: np.ndarray
    opponent_strength: np.ndarray
    expected_score: np.ndarray
    win_probability: np.ndarray
    outcome: np.ndarray

    @property
    def num_simulations(self) -> int:
        return self.outcome.shape[0]

    @property
    def simulated_win_rate(self) -> np.ndarray:
        """Per-game share of replicates that generated a win."""
        return self.outcome.mean(axis=0)

    @property
    def mean_win_probability(self) -> np.ndarray:
        return self.win_probability.mean(axis=0)

    def replicate_accuracy(self) -> np.ndarray:
        """Accuracy of each simulated season's outcomes against the real one."""
        return np.array([accuracy(row, self.observed) for row in self.outcome])

    def outcome_metrics(self, threshold: float = 0.5) -> Dict[str, float]:
        """
        Metrics of the simulated win rate as a forecast of the observed games.

        Adds the mean and spread of per-replicate accuracy to the standard
        forecast metrics.
        """
        metrics = outcome_metrics(self.simulated_win_rate, self.observed, threshold=threshold)
        per_replicate = self.replicate_accuracy()
        metrics["replicate_accuracy_mean"] = float(per_replicate.mean())
        metrics["replicate_accuracy_std"] = float(per_replicate.std())
        metrics["observed_wins"] = int(self.observed.sum())
        metrics["simulated_wins_mean"] = float(self.outcome.sum(axis=1).mean())
        return metrics

    def to_frame(self, quantiles: Tuple[float, float] = (0.05, 0.95)) -> pd.DataFrame:
        """Per-game summary for overlay plots."""
        lo, hi = quantiles
        return pd.DataFrame(
            {
                "time": self.time.astype(int),
                "observed": self.observed.astype(int),
                "simulated_win_rate": self.simulated_win_rate,
                "mean_win_probability": self.mean_win_probability,
                "team_strength_mean": self.team_strength.mean(axis=0),
                f"team_strength_q{int(lo * 100):02d}": np.quantile(self.team_strength, lo, axis=0),
                f"team_strength_q{int(hi * 100):02d}": np.quantile(self.team_strength, hi, axis=0),
                "opponent_strength_mean": self.opponent_strength.mean(axis=0),
            }
        )


def _simulate_batch(
    model: PompModel,
    series: ObservationSeries,
    params: ParameterVector,
    batch_size: int,
    seed: int,
) -> Dict[str, np.ndarray]:
    """
    Simulate ``batch_size`` independent trajectories in a subprocess.

    Returns:
        Dict of field name -> array [batch_size, T]
    """
    rng = np.random.default_rng(seed)
    theta = model.theta(params)
    transition = model.transition
    observation = model.observation
    n_steps = len(series)

    out = {name: np.empty((n_steps, batch_size)) for name in TRAJECTORY_FIELDS}
    team, opponent = transition.initial_state(batch_size)
    for i in range(n_steps):
        covariates = series.covariates_at(i)
        step = transition.step(team, opponent, covariates, theta, rng)
        team, opponent = step.team_strength, step.opponent_strength
        hca = theta["home_court_advantage"]

        out["team_strength"][i] = team
        out["opponent_strength"][i] = opponent
        out["expected_score"][i] = step.expected_score
        out["win_probability"][i] = observation.win_probability(team, opponent, covariates, hca)
        out["outcome"][i] = observation.simulate(rng, team, opponent, covariates, hca)

    return {name: values.T for name, values in out.items()}


class Simulator:
    """
    Monte Carlo trajectory simulator.

    Features:
    - Batches with distinct seeds, deterministic given the base seed
    - Parallel batches via ProcessPoolExecutor, sequential fallback
    - Uses the model's own observation strategy, so the attendance
      variant simulates with its attendance-aware home bonus
    """

    def __init__(self, model: PompModel, config: SimulationConfig = None):
        self.model = model
        self.config = config or SimulationConfig()

    def _batches(self) -> List[Tuple[int, int]]:
        num_sims = self.config.num_simulations
        batch_size = max(1, self.config.batch_size)
        base_seed = self.config.random_seed if self.config.random_seed is not None else 42

        batches = []
        remaining = num_sims
        batch_idx = 0
        while remaining > 0:
            bs = min(batch_size, remaining)
            batches.append((bs, base_seed + batch_idx * 1000))
            remaining -= bs
            batch_idx += 1
        return batches

    def simulate(self, series: ObservationSeries, params: ParameterVector) -> SimulationResult:
        """
        Simulate trajectories over the covariates of ``series``.

        Args:
            series: Season whose covariates drive the simulation; its
                outcomes are kept as the observed trajectory
            params: Parameter vector to simulate at

        Returns:
            SimulationResult
        """
        self.model.check(series)
        batches = self._batches()
        n_workers = self.config.parallel_workers
        results: Dict[int, Dict[str, np.ndarray]] = {}

        if n_workers > 1 and len(batches) > 1:
            try:
                with ProcessPoolExecutor(max_workers=n_workers) as executor:
                    futures = {
                        executor.submit(_simulate_batch, self.model, series, params, bs, seed): idx
                        for idx, (bs, seed) in enumerate(batches)
                    }
                    for future in as_completed(futures):
                        results[futures[future]] = future.result()
            except (RuntimeError, OSError):
                logger.warning("process pool unavailable; simulating batches sequentially")
                results = {}

        for idx, (bs, seed) in enumerate(batches):
            if idx not in results:
                results[idx] = _simulate_batch(self.model, series, params, bs, seed)

        ordered = [results[idx] for idx in range(len(batches))]
        merged = {name: np.vstack([batch[name] for batch in ordered]) for name in TRAJECTORY_FIELDS}
        merged["outcome"] = merged["outcome"].astype(int)
        return SimulationResult(
            time=np.asarray(series.time, dtype=int),
            observed=np.asarray(series.outcome, dtype=int),
            **merged,
        )

    def simulated_series(
        self,
        series: ObservationSeries,
        params: ParameterVector,
        replicate: int = 0,
    ) -> ObservationSeries:
        """Copy of ``series`` whose outcomes are one simulated season."""
        result = self.simulate(series, params)
        return series.with_outcomes(result.outcome[replicate])
