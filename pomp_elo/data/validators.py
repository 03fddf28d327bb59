"""Schema validators for per-game observation tables."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import numpy as np

BASE_FIELDS = ("time", "home", "outcome")
BINARY_FIELDS = ("home", "outcome")


class InputValidationError(ValueError):
    """Raised when an observation table is malformed or missing covariates."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        shown = "; ".join(self.errors[:5])
        if len(self.errors) > 5:
            shown += f" (+{len(self.errors) - 5} more)"
        super().__init__(f"invalid observation table: {shown}")


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if np.isnan(out):
        return None
    return out


def coerce_column(values: Iterable) -> np.ndarray:
    """Convert raw cell values to a float array, mapping unusable cells to NaN."""
    out = []
    for value in values:
        val = _to_float(value)
        out.append(np.nan if val is None else val)
    return np.asarray(out, dtype=float)


def validate_time_index(time: np.ndarray) -> List[str]:
    errors: List[str] = []
    for idx, value in enumerate(time):
        if not np.isfinite(value) or value != int(value):
            errors.append(f"time[{idx}] must be an integer, got {value!r}")
    if errors:
        return errors

    if len(time) and time[0] < 1:
        errors.append(f"time[0] must be >= 1, got {int(time[0])}")
    gaps = np.flatnonzero(np.diff(time) != 1)
    for idx in gaps:
        errors.append(
            f"time[{idx + 1}]={int(time[idx + 1])} does not directly follow time[{idx}]={int(time[idx])}"
        )
    return errors


def validate_binary(values: np.ndarray, name: str) -> List[str]:
    errors: List[str] = []
    for idx in np.flatnonzero(~np.isin(values, (0.0, 1.0))):
        errors.append(f"{name}[{idx}] must be 0 or 1, got {values[idx]!r}")
    return errors


def validate_attendance(attendance: np.ndarray) -> List[str]:
    errors: List[str] = []
    for idx, value in enumerate(attendance):
        if not np.isfinite(value):
            errors.append(f"attendance[{idx}] is missing")
        elif value <= 0:
            errors.append(f"attendance[{idx}] must be positive, got {value!r}")
    return errors


def validate_observation_columns(
    columns: Dict[str, np.ndarray],
    required_fields: Iterable[str] = (),
) -> List[str]:
    """
    Validate the columns of one tracked team's observation table.

    Args:
        columns: Field name -> float array (NaN marks a missing cell)
        required_fields: Covariates the chosen model variant needs on every row,
            checked in addition to time, home and outcome

    Returns:
        List of human-readable error strings (empty when valid)
    """
    errors: List[str] = []
    required = list(BASE_FIELDS) + [f for f in required_fields if f not in BASE_FIELDS]

    missing = [f for f in required if f not in columns]
    if missing:
        return [f"observation table missing fields: {', '.join(missing)}"]

    lengths = {name: len(values) for name, values in columns.items()}
    if len(set(lengths.values())) > 1:
        return [f"observation columns have unequal lengths: {lengths}"]
    if not lengths or max(lengths.values()) == 0:
        return ["observation table must contain at least one game"]

    errors.extend(validate_time_index(columns["time"]))
    for name in BINARY_FIELDS:
        errors.extend(validate_binary(columns[name], name))

    for name in required:
        if name in BASE_FIELDS:
            continue
        values = columns[name]
        if name == "attendance":
            errors.extend(validate_attendance(values))
            continue
        for idx in np.flatnonzero(~np.isfinite(values)):
            errors.append(f"{name}[{idx}] missing/invalid numeric value")
    return errors
