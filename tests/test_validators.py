"""Unit tests for observation-table validators and the series container."""

import numpy as np
import pytest

from pomp_elo.data.validators import (
    InputValidationError,
    coerce_column,
    validate_observation_columns,
)
from pomp_elo.models.game import GameRecord, ObservationSeries


def _columns(n=3, **overrides):
    columns = {
        "time": np.arange(1, n + 1, dtype=float),
        "home": np.array([1, 0, 1][:n], dtype=float),
        "outcome": np.array([1, 1, 0][:n], dtype=float),
        "own_form": np.zeros(n),
        "opp_rating": np.full(n, 1500.0),
        "attendance": np.full(n, 18000.0),
    }
    columns.update(overrides)
    return columns


def test_validate_observation_columns_ok():
    assert validate_observation_columns(_columns()) == []
    assert validate_observation_columns(_columns(), required_fields=["own_form", "opp_rating"]) == []


def test_validate_observation_columns_missing_field():
    columns = _columns()
    del columns["outcome"]
    errors = validate_observation_columns(columns)
    assert errors
    assert "missing fields" in errors[0]


def test_validate_rejects_non_contiguous_time():
    errors = validate_observation_columns(_columns(time=np.array([1.0, 2.0, 4.0])))
    assert any("does not directly follow" in e for e in errors)


def test_validate_rejects_decreasing_time():
    errors = validate_observation_columns(_columns(time=np.array([2.0, 1.0, 3.0])))
    assert errors


def test_validate_rejects_fractional_time():
    errors = validate_observation_columns(_columns(time=np.array([1.0, 2.5, 3.0])))
    assert any("must be an integer" in e for e in errors)


def test_validate_rejects_non_binary_outcome():
    errors = validate_observation_columns(_columns(outcome=np.array([1.0, 2.0, 0.0])))
    assert any("outcome[1]" in e for e in errors)


def test_validate_rejects_missing_required_covariate():
    errors = validate_observation_columns(
        _columns(opp_rating=np.array([1500.0, np.nan, 1500.0])),
        required_fields=["opp_rating"],
    )
    assert errors
    assert "missing/invalid numeric value" in errors[0]


def test_validate_attendance_must_be_positive():
    errors = validate_observation_columns(
        _columns(attendance=np.array([18000.0, 0.0, np.nan])),
        required_fields=["attendance"],
    )
    assert any("must be positive" in e for e in errors)
    assert any("is missing" in e for e in errors)


def test_coerce_column_maps_garbage_to_nan():
    values = coerce_column(["1.5", None, "abc", 3])
    assert values[0] == 1.5
    assert np.isnan(values[1])
    assert np.isnan(values[2])
    assert values[3] == 3.0


def test_input_validation_error_previews_errors():
    exc = InputValidationError([f"problem {i}" for i in range(8)])
    assert isinstance(exc, ValueError)
    assert len(exc.errors) == 8
    assert "(+3 more)" in str(exc)


def _records():
    return [
        GameRecord(time=1, home=1, own_form=0.1, outcome=1, opponent="BOS", opp_rating=1550.0),
        GameRecord(time=2, home=0, own_form=-0.1, outcome=0, opponent="NYK", opp_rating=1480.0),
        GameRecord(time=3, home=1, own_form=0.0, outcome=1, opponent="MIA", opp_rating=1510.0),
    ]


def test_series_from_records():
    series = ObservationSeries.from_records(_records(), team="LAL")
    assert len(series) == 3
    assert series.team == "LAL"
    assert list(series.home) == [1, 0, 1]
    assert series.opponents == ("BOS", "NYK", "MIA")
    # opp_form was never supplied
    assert np.all(np.isnan(series.opp_form))


def test_series_is_read_only():
    series = ObservationSeries.from_records(_records())
    with pytest.raises(ValueError):
        series.outcome[0] = 0


def test_series_rejects_bad_time_on_construction():
    records = [r.to_dict() for r in _records()]
    records[2]["time"] = 5
    with pytest.raises(InputValidationError):
        ObservationSeries.from_records(records)


def test_series_rejects_empty_table():
    with pytest.raises(InputValidationError):
        ObservationSeries.from_records([])


def test_series_require_reports_missing_covariate():
    series = ObservationSeries.from_records(_records())
    series.require(["own_form", "opp_rating"])
    with pytest.raises(InputValidationError) as excinfo:
        series.require(["opp_form"])
    assert "opp_form" in str(excinfo.value)


def test_covariates_at_reads_one_row():
    series = ObservationSeries.from_records(_records())
    cov = series.covariates_at(1)
    assert cov.time == 2
    assert cov.home == 0
    assert cov.opp_rating == 1480.0


def test_reordered_moves_games_and_renumbers_time():
    series = ObservationSeries.from_records(_records())
    reversed_series = series.reordered([2, 1, 0])
    assert list(reversed_series.time) == [1, 2, 3]
    assert reversed_series.opponents == ("MIA", "NYK", "BOS")
    assert list(reversed_series.opp_rating) == [1510.0, 1480.0, 1550.0]
    with pytest.raises(ValueError):
        series.reordered([0, 0, 1])


def test_with_outcomes_replaces_only_outcomes():
    series = ObservationSeries.from_records(_records())
    flipped = series.with_outcomes([0, 1, 0])
    assert list(flipped.outcome) == [0, 1, 0]
    assert list(flipped.opp_rating) == list(series.opp_rating)
    assert list(series.outcome) == [1, 0, 1]


def test_records_round_trip():
    series = ObservationSeries.from_records(_records(), team="LAL")
    rebuilt = ObservationSeries.from_records(series.records(), team="LAL")
    assert list(rebuilt.outcome) == list(series.outcome)
    assert rebuilt.opponents == series.opponents
