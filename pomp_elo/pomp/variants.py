"""Model variants assembled from transition and observation strategies."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

import numpy as np

from ..models.game import ObservationSeries
from ..models.params import ParameterBounds, ParameterVector
from .observation import ELO_SCORE_SCALE, AttendanceObservationModel, ObservationModel
from .transition import (
    BASELINE_RATING,
    DEFAULT_K_FACTOR,
    LatentOpponentTransition,
    StateTransitionModel,
)


class ModelVariant(str, Enum):
    """Supported model variants."""

    COVARIATE_OPPONENT = "covariate"
    STATE_OPPONENT = "state"
    ATTENDANCE = "attendance"


# Search boxes used when the caller supplies none.
DEFAULT_BOUNDS: Dict[ModelVariant, Dict[str, Tuple[float, float]]] = {
    ModelVariant.COVARIATE_OPPONENT: {
        "beta1": (-50.0, 50.0),
        "sigma": (1.0, 40.0),
        "alpha": (0.01, 0.5),
        "home_court_advantage": (-0.5, 1.0),
    },
    ModelVariant.STATE_OPPONENT: {
        "beta1": (-50.0, 50.0),
        "beta2": (-50.0, 50.0),
        "sigma": (1.0, 40.0),
        "alpha": (0.01, 0.5),
        "home_court_advantage": (-0.5, 1.0),
    },
    ModelVariant.ATTENDANCE: {
        "beta1": (-50.0, 50.0),
        "sigma": (1.0, 40.0),
        "alpha": (0.01, 0.5),
        "home_court_advantage": (-12.0, -8.0),
    },
}

# Random-walk standard deviations on the estimation scale (log sigma, logit alpha).
DEFAULT_RW_SD: Dict[str, float] = {
    "beta1": 2.0,
    "beta2": 2.0,
    "sigma": 0.05,
    "alpha": 0.05,
    "home_court_advantage": 0.02,
}


@dataclass(frozen=True)
class PompModel:
    """A transition strategy paired with an observation strategy."""

    variant: ModelVariant
    transition: StateTransitionModel
    observation: ObservationModel

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(self.transition.parameter_names) + ("home_court_advantage",)

    @property
    def required_fields(self) -> Tuple[str, ...]:
        fields = tuple(self.transition.required_fields)
        if self.observation.uses_attendance:
            fields += ("attendance",)
        return fields

    def check(self, series: ObservationSeries) -> None:
        """Validate that ``series`` carries every covariate this variant reads."""
        series.require(self.required_fields)

    def theta(
        self,
        params: ParameterVector,
        n: Optional[int] = None,
    ) -> Dict[str, Union[float, np.ndarray]]:
        """Parameter values keyed by name, optionally broadcast to ``n`` particles."""
        errors = params.validate()
        if errors:
            raise ValueError("; ".join(errors))
        values = params.to_dict()
        if n is None:
            return values
        return {name: np.full(n, value) for name, value in values.items()}

    def default_bounds(self) -> ParameterBounds:
        box = DEFAULT_BOUNDS[self.variant]
        return ParameterBounds(
            lower={k: v[0] for k, v in box.items()},
            upper={k: v[1] for k, v in box.items()},
        )

    def default_rw_sd(self) -> Dict[str, float]:
        return {name: DEFAULT_RW_SD[name] for name in self.parameter_names}


def build_model(
    variant: Union[ModelVariant, str] = ModelVariant.COVARIATE_OPPONENT,
    k_factor: float = DEFAULT_K_FACTOR,
    baseline: float = BASELINE_RATING,
    score_scale: float = ELO_SCORE_SCALE,
) -> PompModel:
    """
    Create a model for one of the supported variants.

    Args:
        variant: Which variant to build ('covariate', 'state', 'attendance')
        k_factor: ELO K for the per-step correction
        baseline: Starting and mean-reversion rating
        score_scale: Divisor turning ratings into Bradley-Terry log-worths

    Returns:
        PompModel
    """
    variant = ModelVariant(variant)
    if variant == ModelVariant.STATE_OPPONENT:
        transition = LatentOpponentTransition(baseline=baseline, k_factor=k_factor)
    else:
        transition = StateTransitionModel(baseline=baseline, k_factor=k_factor)

    if variant == ModelVariant.ATTENDANCE:
        observation = AttendanceObservationModel(score_scale=score_scale)
    else:
        observation = ObservationModel(score_scale=score_scale)

    return PompModel(variant=variant, transition=transition, observation=observation)
