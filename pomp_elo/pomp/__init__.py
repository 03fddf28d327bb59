"""Partially observed Markov process engine: models, filters and search."""

from .global_search import (
    GlobalSearchConfig,
    GlobalSearchError,
    GlobalSearchOrchestrator,
    GlobalSearchResult,
    RestartResult,
    evaluate_likelihood,
    log_mean_exp,
)
from .iterated_filter import IteratedFilter, IteratedFilterConfig, IteratedFilterResult
from .observation import AttendanceObservationModel, ObservationModel
from .particle_filter import DegenerateFilterError, FilterResult, ParticleFilter
from .transition import LatentOpponentTransition, StateTransitionModel
from .variants import ModelVariant, PompModel, build_model

__all__ = [
    "GlobalSearchConfig",
    "GlobalSearchError",
    "GlobalSearchOrchestrator",
    "GlobalSearchResult",
    "RestartResult",
    "evaluate_likelihood",
    "log_mean_exp",
    "IteratedFilter",
    "IteratedFilterConfig",
    "IteratedFilterResult",
    "AttendanceObservationModel",
    "ObservationModel",
    "DegenerateFilterError",
    "FilterResult",
    "ParticleFilter",
    "LatentOpponentTransition",
    "StateTransitionModel",
    "ModelVariant",
    "PompModel",
    "build_model",
]
