"""Parameter vectors, search bounds and likelihood estimates."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
from scipy.special import expit, logit

PARAMETER_NAMES = ("beta1", "beta2", "sigma", "alpha", "home_court_advantage")

# Parameters perturbed on a transformed scale during iterated filtering.
# sigma is positive, alpha is a mean-reversion fraction in (0, 1).
_LOG_SCALE = ("sigma",)
_LOGIT_SCALE = ("alpha",)
_EPS = 1e-8


@dataclass(frozen=True)
class ParameterVector:
    """Model parameters. ``beta2`` only matters for the state-opponent variant."""

    beta1: float = 0.0
    sigma: float = 0.0
    alpha: float = 0.0
    home_court_advantage: float = 0.0
    beta2: float = 0.0

    def validate(self) -> List[str]:
        errors: List[str] = []
        for name in PARAMETER_NAMES:
            if not math.isfinite(getattr(self, name)):
                errors.append(f"{name} must be finite, got {getattr(self, name)!r}")
        if self.sigma < 0:
            errors.append(f"sigma must be >= 0, got {self.sigma}")
        if not 0.0 <= self.alpha <= 1.0:
            errors.append(f"alpha must be within [0, 1], got {self.alpha}")
        return errors

    def replace(self, **changes) -> "ParameterVector":
        return dataclasses.replace(self, **{k: float(v) for k, v in changes.items()})

    def to_dict(self, names: Optional[Iterable[str]] = None) -> Dict[str, float]:
        names = PARAMETER_NAMES if names is None else names
        return {name: float(getattr(self, name)) for name in names}

    @classmethod
    def from_dict(cls, data: dict) -> "ParameterVector":
        unknown = set(data) - set(PARAMETER_NAMES)
        if unknown:
            raise ValueError(f"Unknown parameters: {sorted(unknown)}")
        return cls(**{k: float(v) for k, v in data.items()})

    @classmethod
    def from_array(
        cls,
        names: Sequence[str],
        values: Sequence[float],
        base: Optional["ParameterVector"] = None,
    ) -> "ParameterVector":
        base = base or cls()
        return base.replace(**dict(zip(names, values)))


def to_estimation_scale(name: str, values):
    """Map natural-scale parameter values to the scale they are perturbed on."""
    values = np.asarray(values, dtype=float)
    if name in _LOG_SCALE:
        return np.log(np.maximum(values, _EPS))
    if name in _LOGIT_SCALE:
        return logit(np.clip(values, _EPS, 1.0 - _EPS))
    return values


def from_estimation_scale(name: str, values):
    values = np.asarray(values, dtype=float)
    if name in _LOG_SCALE:
        return np.exp(values)
    if name in _LOGIT_SCALE:
        return expit(values)
    return values


@dataclass
class ParameterBounds:
    """Box bounds used to draw random starting points for the global search."""

    lower: Dict[str, float]
    upper: Dict[str, float]

    def __post_init__(self):
        if set(self.lower) != set(self.upper):
            raise ValueError("lower and upper bounds must name the same parameters")
        unknown = set(self.lower) - set(PARAMETER_NAMES)
        if unknown:
            raise ValueError(f"Unknown parameters in bounds: {sorted(unknown)}")
        for name in self.lower:
            if self.lower[name] > self.upper[name]:
                raise ValueError(
                    f"Lower bound for {name} exceeds upper bound: {self.lower[name]} > {self.upper[name]}"
                )

    @property
    def names(self) -> List[str]:
        return [name for name in PARAMETER_NAMES if name in self.lower]

    def sample(
        self,
        n: int,
        rng: np.random.Generator,
        base: Optional[ParameterVector] = None,
    ) -> List[ParameterVector]:
        """Draw ``n`` independent uniform starting points inside the box."""
        names = self.names
        lo = np.array([self.lower[name] for name in names])
        hi = np.array([self.upper[name] for name in names])
        draws = rng.uniform(lo, hi, size=(n, len(names)))
        return [ParameterVector.from_array(names, row, base=base) for row in draws]

    def contains(self, params: ParameterVector) -> bool:
        return all(self.lower[n] <= getattr(params, n) <= self.upper[n] for n in self.names)

    def to_dict(self) -> Dict[str, List[float]]:
        return {name: [self.lower[name], self.upper[name]] for name in self.names}

    @classmethod
    def from_dict(cls, data: Dict[str, Sequence[float]]) -> "ParameterBounds":
        return cls(
            lower={k: float(v[0]) for k, v in data.items()},
            upper={k: float(v[1]) for k, v in data.items()},
        )


@dataclass(frozen=True)
class LikelihoodEstimate:
    """Monte Carlo log-likelihood estimate with its standard error."""

    loglik: float
    se: float = float("nan")
    n_replicates: int = 1

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.loglik)

    def ranking_key(self):
        """Sort key: higher loglik first, then lower standard error."""
        se = self.se if math.isfinite(self.se) else float("inf")
        return (self.loglik, -se)

    def to_dict(self) -> dict:
        return {"loglik": self.loglik, "se": self.se, "n_replicates": self.n_replicates}
