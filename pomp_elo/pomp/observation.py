"""Bradley-Terry measurement model for game outcomes."""

import math
from typing import Tuple, Union

import numpy as np

from ..data.validators import InputValidationError
from ..models.game import StepCovariates

ArrayLike = Union[float, np.ndarray]

# Dividing ratings by 400/ln(10) makes the symmetric case coincide with the
# ELO expected score.
ELO_SCORE_SCALE = 400.0 / math.log(10.0)

# Win probabilities are kept this far from 0 and 1.
PROBABILITY_FLOOR = 1e-12


class ObservationModel:
    """
    Home-court-adjusted Bradley-Terry win probability.

    Strengths are divided by ``score_scale`` to give log-worths; the home side
    (per record) receives the home-court bonus. Win probability is
    ``exp(s_team) / (exp(s_team) + exp(s_opp))``, evaluated after subtracting
    the larger score.
    """

    uses_attendance = False

    def __init__(self, score_scale: float = ELO_SCORE_SCALE):
        if score_scale <= 0:
            raise ValueError(f"score_scale must be positive, got {score_scale}")
        self.score_scale = float(score_scale)

    def home_bonus(self, covariates: StepCovariates, home_court_advantage: ArrayLike) -> ArrayLike:
        return home_court_advantage

    def scores(
        self,
        team: ArrayLike,
        opponent: ArrayLike,
        covariates: StepCovariates,
        home_court_advantage: ArrayLike,
    ) -> Tuple[np.ndarray, np.ndarray]:
        bonus = self.home_bonus(covariates, home_court_advantage)
        s_team = np.asarray(team, dtype=float) / self.score_scale
        s_opp = np.asarray(opponent, dtype=float) / self.score_scale
        if covariates.home == 1:
            s_team = s_team + bonus
        else:
            s_opp = s_opp + bonus
        return s_team, s_opp

    def _log_probabilities(self, team, opponent, covariates, home_court_advantage):
        s_team, s_opp = self.scores(team, opponent, covariates, home_court_advantage)
        top = np.maximum(s_team, s_opp)
        log_norm = top + np.log(np.exp(s_team - top) + np.exp(s_opp - top))
        return s_team - log_norm, s_opp - log_norm

    def win_probability(
        self,
        team: ArrayLike,
        opponent: ArrayLike,
        covariates: StepCovariates,
        home_court_advantage: ArrayLike,
    ) -> np.ndarray:
        s_team, s_opp = self.scores(team, opponent, covariates, home_court_advantage)
        top = np.maximum(s_team, s_opp)
        w_team = np.exp(s_team - top)
        w_opp = np.exp(s_opp - top)
        return np.clip(w_team / (w_team + w_opp), PROBABILITY_FLOOR, 1.0 - PROBABILITY_FLOOR)

    def log_likelihood(
        self,
        outcome: int,
        team: ArrayLike,
        opponent: ArrayLike,
        covariates: StepCovariates,
        home_court_advantage: ArrayLike,
    ) -> np.ndarray:
        """Log Bernoulli mass of the observed outcome for every particle."""
        log_win, log_loss = self._log_probabilities(team, opponent, covariates, home_court_advantage)
        return log_win if int(outcome) == 1 else log_loss

    def simulate(
        self,
        rng: np.random.Generator,
        team: ArrayLike,
        opponent: ArrayLike,
        covariates: StepCovariates,
        home_court_advantage: ArrayLike,
    ) -> np.ndarray:
        """Draw one outcome per particle. Used only for simulation."""
        p = self.win_probability(team, opponent, covariates, home_court_advantage)
        return (rng.random(np.shape(p)) < p).astype(int)


class AttendanceObservationModel(ObservationModel):
    """Bradley-Terry model whose home bonus also grows with log attendance."""

    uses_attendance = True

    def home_bonus(self, covariates, home_court_advantage):
        attendance = covariates.attendance
        if not attendance > 0:
            raise InputValidationError(
                [f"attendance at time {covariates.time} must be positive, got {attendance!r}"]
            )
        return home_court_advantage + math.log(attendance)
