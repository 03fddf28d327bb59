"""Game records and the per-team observation series."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..data.validators import (
    InputValidationError,
    coerce_column,
    validate_observation_columns,
)

NUMERIC_FIELDS = ("time", "home", "own_form", "opp_form", "opp_rating", "attendance", "outcome")


class StepCovariates(NamedTuple):
    """Covariates the models read at a single time step."""

    time: int
    home: int
    own_form: float
    opp_form: float
    opp_rating: float
    attendance: float


@dataclass(frozen=True)
class GameRecord:
    """One game from the tracked team's point of view."""

    time: int
    home: int
    own_form: float
    outcome: int
    date: Optional[str] = None
    opponent: Optional[str] = None
    opp_form: float = float("nan")
    opp_rating: float = float("nan")
    attendance: float = float("nan")

    def to_dict(self) -> dict:
        """Convert record to dictionary."""
        return {
            "time": self.time,
            "date": self.date,
            "opponent": self.opponent,
            "home": self.home,
            "own_form": self.own_form,
            "opp_form": self.opp_form,
            "opp_rating": self.opp_rating,
            "attendance": self.attendance,
            "outcome": self.outcome,
        }


@dataclass(frozen=True, eq=False)
class ObservationSeries:
    """
    Ordered, read-only table of one tracked team's games.

    Columns are float arrays; NaN marks a covariate the source table did not
    provide. Time indices, home flags and outcomes are validated on
    construction; variant-specific covariates are validated by ``require``.
    """

    time: np.ndarray
    home: np.ndarray
    own_form: np.ndarray
    outcome: np.ndarray
    opp_form: Optional[np.ndarray] = None
    opp_rating: Optional[np.ndarray] = None
    attendance: Optional[np.ndarray] = None
    dates: Tuple[Optional[str], ...] = ()
    opponents: Tuple[Optional[str], ...] = ()
    team: Optional[str] = None
    _columns: Dict[str, np.ndarray] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        n = len(self.time)
        columns = {}
        for name in NUMERIC_FIELDS:
            raw = getattr(self, name)
            values = np.full(n, np.nan) if raw is None else coerce_column(raw)
            values.setflags(write=False)
            object.__setattr__(self, name, values)
            columns[name] = values
        object.__setattr__(self, "dates", tuple(self.dates) or (None,) * n)
        object.__setattr__(self, "opponents", tuple(self.opponents) or (None,) * n)
        object.__setattr__(self, "_columns", columns)

        errors = validate_observation_columns(columns)
        if errors:
            raise InputValidationError(errors)

    def __len__(self) -> int:
        return len(self.time)

    @property
    def columns(self) -> Dict[str, np.ndarray]:
        return dict(self._columns)

    def require(self, fields: Iterable[str]) -> None:
        """Raise InputValidationError unless every row carries ``fields``."""
        errors = validate_observation_columns(self._columns, required_fields=fields)
        if errors:
            raise InputValidationError(errors)

    def covariates_at(self, index: int) -> StepCovariates:
        return StepCovariates(
            time=int(self.time[index]),
            home=int(self.home[index]),
            own_form=float(self.own_form[index]),
            opp_form=float(self.opp_form[index]),
            opp_rating=float(self.opp_rating[index]),
            attendance=float(self.attendance[index]),
        )

    def records(self) -> List[GameRecord]:
        out = []
        for i in range(len(self)):
            out.append(
                GameRecord(
                    time=int(self.time[i]),
                    home=int(self.home[i]),
                    own_form=float(self.own_form[i]),
                    outcome=int(self.outcome[i]),
                    date=self.dates[i],
                    opponent=self.opponents[i],
                    opp_form=float(self.opp_form[i]),
                    opp_rating=float(self.opp_rating[i]),
                    attendance=float(self.attendance[i]),
                )
            )
        return out

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame({name: np.asarray(values) for name, values in self._columns.items()})
        frame["time"] = frame["time"].astype(int)
        frame["home"] = frame["home"].astype(int)
        frame["outcome"] = frame["outcome"].astype(int)
        frame.insert(1, "date", list(self.dates))
        frame.insert(2, "opponent", list(self.opponents))
        return frame

    def with_outcomes(self, outcomes: Sequence[int]) -> "ObservationSeries":
        """Copy of this series with the observed outcomes replaced."""
        return self._rebuild(np.arange(len(self)), outcome=np.asarray(outcomes, dtype=float))

    def reordered(self, order: Sequence[int]) -> "ObservationSeries":
        """
        Copy with games played in ``order``; time indices are reassigned 1..T.

        Covariates and outcomes travel together, so only the sequence in
        which the latent process sees the games changes.
        """
        order = np.asarray(order, dtype=int)
        if sorted(order.tolist()) != list(range(len(self))):
            raise ValueError("order must be a permutation of the series positions")
        return self._rebuild(order)

    def _rebuild(self, order: np.ndarray, **overrides) -> "ObservationSeries":
        kwargs = {name: self._columns[name][order] for name in NUMERIC_FIELDS}
        kwargs["time"] = np.arange(1, len(order) + 1, dtype=float)
        kwargs.update(overrides)
        return ObservationSeries(
            dates=tuple(self.dates[i] for i in order),
            opponents=tuple(self.opponents[i] for i in order),
            team=self.team,
            **kwargs,
        )

    @classmethod
    def from_records(cls, records: Iterable, team: Optional[str] = None) -> "ObservationSeries":
        """Build a series from GameRecord objects or plain dicts."""
        rows = [r.to_dict() if isinstance(r, GameRecord) else dict(r) for r in records]
        if not rows:
            raise InputValidationError(["observation table must contain at least one game"])
        return cls(
            time=[row.get("time") for row in rows],
            home=[row.get("home") for row in rows],
            own_form=[row.get("own_form") for row in rows],
            outcome=[row.get("outcome") for row in rows],
            opp_form=[row.get("opp_form") for row in rows],
            opp_rating=[row.get("opp_rating") for row in rows],
            attendance=[row.get("attendance") for row in rows],
            dates=tuple(_optional_str(row.get("date")) for row in rows),
            opponents=tuple(_optional_str(row.get("opponent")) for row in rows),
            team=team,
        )

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, team: Optional[str] = None) -> "ObservationSeries":
        """
        Build a series from a DataFrame already using canonical column names.

        Rows are taken in table order, so a table whose rows contradict its
        time index fails validation.
        """
        rows = frame.to_dict(orient="records")
        return cls.from_records(rows, team=team)


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    return str(value)
