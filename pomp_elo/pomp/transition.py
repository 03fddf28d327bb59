"""
Latent team-strength dynamics.

Each step applies a mean-reverting, covariate-driven random walk to the
team's strength, then folds a standard ELO correction into the process:
a win is simulated from the ELO expected score and the strength moves by
``K * (1 - E)`` in the direction of that simulated result. The reversion
toward the common baseline keeps the asymmetric correction from drifting
team and opponent scales apart.

All operations are vectorised over a particle ensemble; parameters may be
scalars or per-particle arrays.
"""

from dataclasses import dataclass
from typing import Dict, Tuple, Union

import numpy as np
from scipy.special import expit

from ..models.game import StepCovariates

ArrayLike = Union[float, np.ndarray]

BASELINE_RATING = 1500.0
ELO_SCALE = 400.0
DEFAULT_K_FACTOR = 20.0


@dataclass
class TransitionStep:
    """State of every particle after one transition."""

    team_strength: np.ndarray
    opponent_strength: np.ndarray
    expected_score: np.ndarray


class StateTransitionModel:
    """Transition with the opponent strength read from the opponent's rating."""

    latent_opponent = False
    parameter_names: Tuple[str, ...] = ("beta1", "sigma", "alpha")
    required_fields: Tuple[str, ...] = ("own_form", "opp_rating")

    def __init__(
        self,
        baseline: float = BASELINE_RATING,
        k_factor: float = DEFAULT_K_FACTOR,
        elo_scale: float = ELO_SCALE,
    ):
        """
        Args:
            baseline: Rating every strength starts at and reverts toward
            k_factor: ELO K used for the per-step correction
            elo_scale: Rating difference giving 10:1 expected-score odds
        """
        if k_factor < 0:
            raise ValueError(f"k_factor must be >= 0, got {k_factor}")
        if elo_scale <= 0:
            raise ValueError(f"elo_scale must be positive, got {elo_scale}")
        self.baseline = float(baseline)
        self.k_factor = float(k_factor)
        self.elo_scale = float(elo_scale)

    def initial_state(self, n: int) -> Tuple[np.ndarray, np.ndarray]:
        return np.full(n, self.baseline), np.full(n, self.baseline)

    def mean_revert(
        self,
        strength: ArrayLike,
        covariate: ArrayLike,
        beta: ArrayLike,
        alpha: ArrayLike,
        noise: ArrayLike = 0.0,
    ) -> np.ndarray:
        """Pre-adjustment: covariate push, pull toward baseline, process noise."""
        strength = np.asarray(strength, dtype=float)
        return strength + beta * covariate - alpha * (strength - self.baseline) + noise

    def expected_score(self, team: ArrayLike, opponent: ArrayLike) -> np.ndarray:
        # 1 / (1 + 10**((opp - team)/scale)) written as a logistic to avoid overflow
        diff = np.asarray(team, dtype=float) - np.asarray(opponent, dtype=float)
        return expit(diff * np.log(10.0) / self.elo_scale)

    def elo_correction(
        self,
        strength: np.ndarray,
        expected: np.ndarray,
        simulated_win: np.ndarray,
    ) -> np.ndarray:
        delta = self.k_factor * (1.0 - expected)
        return np.where(simulated_win, strength + delta, strength - delta)

    def opponent_step(
        self,
        opponent: np.ndarray,
        covariates: StepCovariates,
        theta: Dict[str, ArrayLike],
        rng: np.random.Generator,
    ) -> np.ndarray:
        return np.full(opponent.shape, covariates.opp_rating)

    def step(
        self,
        team: np.ndarray,
        opponent: np.ndarray,
        covariates: StepCovariates,
        theta: Dict[str, ArrayLike],
        rng: np.random.Generator,
    ) -> TransitionStep:
        """
        Advance every particle by one game.

        Args:
            team: Team strength per particle
            opponent: Opponent strength per particle
            covariates: This step's covariates
            theta: Parameter name -> scalar or per-particle array
            rng: Generator owned by the calling run

        Returns:
            TransitionStep with the updated state and ELO expected score
        """
        n = team.shape[0]
        noise = rng.standard_normal(n) * theta["sigma"]
        team = self.mean_revert(team, covariates.own_form, theta["beta1"], theta["alpha"], noise)
        opponent = self.opponent_step(opponent, covariates, theta, rng)

        expected = self.expected_score(team, opponent)
        simulated_win = rng.random(n) < expected
        team = self.elo_correction(team, expected, simulated_win)
        return TransitionStep(team_strength=team, opponent_strength=opponent, expected_score=expected)


class LatentOpponentTransition(StateTransitionModel):
    """Transition where the opponent's strength is itself a latent state."""

    latent_opponent = True
    parameter_names = ("beta1", "beta2", "sigma", "alpha")
    required_fields = ("own_form", "opp_form")

    def opponent_step(self, opponent, covariates, theta, rng):
        noise = rng.standard_normal(opponent.shape[0]) * theta["sigma"]
        return self.mean_revert(opponent, covariates.opp_form, theta["beta2"], theta["alpha"], noise)
