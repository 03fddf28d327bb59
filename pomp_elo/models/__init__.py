"""Data structures shared by the estimation engine."""

from .game import GameRecord, ObservationSeries, StepCovariates
from .params import LikelihoodEstimate, ParameterBounds, ParameterVector, PARAMETER_NAMES

__all__ = [
    "GameRecord",
    "ObservationSeries",
    "StepCovariates",
    "LikelihoodEstimate",
    "ParameterBounds",
    "ParameterVector",
    "PARAMETER_NAMES",
]
