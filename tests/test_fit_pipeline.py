"""Tests for data loading, the fit pipeline and the CLI."""

import json

import numpy as np
import pandas as pd
import pytest

from pomp_elo.data.loader import DataLoader
from pomp_elo.data.validators import InputValidationError
from pomp_elo.main import main
from pomp_elo.pipeline.fit import FitConfig, FitPipeline, run_fit_pipeline_to_file


def _tiny_config(**overrides):
    values = {
        "n_starts": 2,
        "n_replicates": 2,
        "replicate_particles": 50,
        "n_iterations": 2,
        "n_particles": 30,
        "num_simulations": 6,
        "random_seed": 3,
        "parallel_workers": 1,
    }
    values.update(overrides)
    return FitConfig(**values)


def test_create_sample_data_round_trip(tmp_path):
    path = tmp_path / "season.csv"
    series = DataLoader.create_sample_data(str(path), n_games=30, seed=4)

    loaded = DataLoader.load_series(str(path))
    assert len(loaded) == 30
    assert np.array_equal(loaded.outcome, series.outcome)
    assert np.allclose(loaded.opp_rating, series.opp_rating)
    assert loaded.dates == series.dates
    loaded.require(["own_form", "opp_form", "opp_rating", "attendance"])


def test_sample_data_is_reproducible(tmp_path):
    a = DataLoader.create_sample_data(str(tmp_path / "a.csv"), n_games=20, seed=9)
    b = DataLoader.create_sample_data(str(tmp_path / "b.csv"), n_games=20, seed=9)
    assert np.array_equal(a.outcome, b.outcome)


def test_load_series_accepts_json_and_aliases(tmp_path):
    rows = [
        {"game": 1, "is_home": 1, "form": 0.1, "opp_elo": 1520, "win": 1},
        {"game": 2, "is_home": 0, "form": -0.05, "opp_elo": 1480, "win": 0},
    ]
    path = tmp_path / "season.json"
    path.write_text(json.dumps({"games": rows}))

    series = DataLoader.load_series(str(path))
    assert list(series.outcome) == [1, 0]
    assert list(series.opp_rating) == [1520.0, 1480.0]
    assert series.own_form[0] == pytest.approx(0.1)


def test_load_series_selects_team(tmp_path):
    frame = pd.DataFrame(
        {
            "team": ["LAL", "LAL", "BOS"],
            "time": [1, 2, 1],
            "home": [1, 0, 1],
            "own_form": [0.0, 0.1, 0.0],
            "opp_rating": [1500, 1510, 1490],
            "outcome": [1, 0, 0],
        }
    )
    path = tmp_path / "league.csv"
    frame.to_csv(path, index=False)

    with pytest.raises(ValueError):
        DataLoader.load_series(str(path))
    series = DataLoader.load_series(str(path), team="LAL")
    assert len(series) == 2
    assert series.team == "LAL"


def _write_league_log(path, n_rounds=6, seed=0):
    rng = np.random.default_rng(seed)
    teams = ["LAL", "BOS", "DEN", "MIA"]
    rows = []
    day = pd.Timestamp("2023-10-24")
    for _ in range(n_rounds):
        for home in teams:
            for away in teams:
                if home == away:
                    continue
                home_score, away_score = rng.integers(90, 125, size=2)
                if home_score == away_score:
                    home_score += 1
                rows.append(
                    {
                        "date": day.strftime("%Y-%m-%d"),
                        "home_team": home,
                        "away_team": away,
                        "home_score": int(home_score),
                        "away_score": int(away_score),
                    }
                )
                day += pd.Timedelta(days=1)
    pd.DataFrame(rows).to_csv(path, index=False)
    return rows


def test_load_league_series_builds_tracked_team(tmp_path):
    path = tmp_path / "league.csv"
    rows = _write_league_log(path)

    series = DataLoader.load_league_series(str(path), "LAL")
    lal_games = [r for r in rows if "LAL" in (r["home_team"], r["away_team"])]
    assert len(series) == len(lal_games)
    assert series.team == "LAL"
    assert list(series.home) == [int(r["home_team"] == "LAL") for r in lal_games]
    assert series.opp_rating[0] == 1500.0
    series.require(["own_form", "opp_form", "opp_rating"])

    with pytest.raises(ValueError):
        DataLoader.load_league_series(str(path), None)


def test_load_series_rejects_rows_out_of_time_order(tmp_path):
    path = tmp_path / "shuffled.csv"
    pd.DataFrame(
        {"time": [2, 1, 3], "home": [1, 0, 1], "own_form": [0.0, 0.1, 0.0], "outcome": [1, 0, 1]}
    ).to_csv(path, index=False)
    with pytest.raises(InputValidationError):
        DataLoader.load_series(str(path))


def test_load_series_rejects_malformed_table(tmp_path):
    path = tmp_path / "bad.csv"
    pd.DataFrame({"time": [1, 3], "home": [1, 0], "own_form": [0, 0], "outcome": [1, 0]}).to_csv(path, index=False)
    with pytest.raises(InputValidationError):
        DataLoader.load_series(str(path))


def test_save_report_handles_numpy_and_non_finite(tmp_path):
    path = tmp_path / "report.json"
    DataLoader.save_report(
        {"loglik": float("-inf"), "se": np.float64(0.5), "n": np.int64(3), "values": np.array([1.0, np.nan])},
        str(path),
    )
    data = json.loads(path.read_text())
    assert data == {"loglik": None, "se": 0.5, "n": 3, "values": [1.0, None]}


def test_fit_config_from_dict_and_json(tmp_path):
    config = FitConfig.from_dict({"variant": "state", "n_starts": 4, "bounds": {"sigma": [1.0, 5.0]}})
    assert config.variant == "state"
    assert config.n_starts == 4
    with pytest.raises(ValueError):
        FitConfig.from_dict({"particles": 10})

    path = tmp_path / "fit.json"
    path.write_text(json.dumps(config.to_dict()))
    assert FitConfig.from_json(str(path)) == config


def test_fit_pipeline_report(tmp_path):
    series = DataLoader.create_sample_data(str(tmp_path / "season.csv"), n_games=25, seed=2)
    report = FitPipeline(_tiny_config()).run(series)

    assert report["variant"] == "covariate"
    assert report["n_games"] == 25
    assert set(report["best"]["params"]) == {"beta1", "sigma", "alpha", "home_court_advantage"}
    assert np.isfinite(report["best"]["loglik"])
    assert len(report["restarts"]) == 2
    assert all(report["best"]["loglik"] >= r["loglik"] for r in report["restarts"] if r["error"] is None)
    assert [row["iteration"] for row in report["trace"]] == [0, 1, 2]
    assert report["simulation"]["num_simulations"] == 6
    assert len(report["simulation"]["per_game"]) == 25
    assert {row["model"] for row in report["baselines"]} <= {"elo", "logistic"}
    assert any(row["model"] == "elo" for row in report["baselines"])


def test_fit_pipeline_holds_fixed_parameters(tmp_path):
    series = DataLoader.create_sample_data(str(tmp_path / "season.csv"), n_games=20, seed=2)
    report = FitPipeline(_tiny_config(fixed={"alpha": 0.1}, run_baselines=False)).run(series)
    assert report["best"]["params"]["alpha"] == pytest.approx(0.1)
    assert "baselines" not in report


def test_fit_pipeline_state_variant(tmp_path):
    series = DataLoader.create_sample_data(str(tmp_path / "season.csv"), n_games=20, seed=5)
    report = FitPipeline(_tiny_config(variant="state")).run(series)
    assert "beta2" in report["best"]["params"]
    # no opponent-rating covariate in the latent-opponent variant's baseline set
    assert all(row["model"] != "elo" for row in report["baselines"])


def test_fit_pipeline_requires_data():
    with pytest.raises(ValueError):
        FitPipeline(_tiny_config()).run()


def test_run_fit_pipeline_to_file(tmp_path):
    data_path = tmp_path / "season.csv"
    DataLoader.create_sample_data(str(data_path), n_games=20, seed=1)
    output = tmp_path / "fit_report.json"

    run_fit_pipeline_to_file(_tiny_config(data_path=str(data_path)), str(output))

    data = json.loads(output.read_text())
    assert data["variant"] == "covariate"
    assert "params" in data["best"]


def test_cli_end_to_end(tmp_path, capsys):
    season = tmp_path / "season.csv"
    assert main(["sample", "--output", str(season), "--games", "30", "--seed", "3"]) == 0

    filter_out = tmp_path / "filter.csv"
    code = main(
        [
            "filter", "--input", str(season), "--particles", "100", "--seed", "1",
            "--beta1", "10", "--sigma", "5", "--alpha", "0.1", "--output", str(filter_out),
        ]
    )
    assert code == 0
    assert len(pd.read_csv(filter_out)) == 30

    report = tmp_path / "fit.json"
    code = main(
        [
            "fit", "--input", str(season), "--output", str(report), "--starts", "2", "--replicates", "2",
            "--replicate-particles", "50", "--iterations", "2", "--particles", "30", "--simulations", "4",
            "--workers", "1", "--seed", "5", "--trace-output", str(tmp_path / "trace.csv"),
        ]
    )
    assert code == 0
    assert len(pd.read_csv(tmp_path / "trace.csv")) == 3

    sim_out = tmp_path / "sim.csv"
    code = main(
        [
            "simulate", "--input", str(season), "--params", str(report), "--simulations", "5",
            "--workers", "1", "--seed", "2", "--output", str(sim_out),
        ]
    )
    assert code == 0
    assert len(pd.read_csv(sim_out)) == 30

    assert main(["baseline", "--input", str(season)]) == 0
    out = capsys.readouterr().out
    assert "Log-likelihood" in out
    assert "Fit complete" in out


def test_fit_pipeline_reads_league_log(tmp_path):
    path = tmp_path / "league.csv"
    _write_league_log(path)
    config = _tiny_config(league_log=str(path), team="BOS", run_baselines=False)

    report = FitPipeline(config).run()
    assert report["team"] == "BOS"
    assert report["n_games"] == 36
    assert np.isfinite(report["best"]["loglik"])


def test_cli_accepts_league_log(tmp_path, capsys):
    league = tmp_path / "league.csv"
    _write_league_log(league)

    code = main(["filter", "--league-log", str(league), "--team", "LAL", "--particles", "100", "--seed", "1"])
    assert code == 0
    assert main(["baseline", "--league-log", str(league), "--team", "LAL"]) == 0
    out = capsys.readouterr().out
    assert "Filtering 36 games" in out
    assert "elo" in out

    report = tmp_path / "fit.json"
    code = main(
        [
            "fit", "--league-log", str(league), "--team", "MIA", "--output", str(report), "--starts", "2",
            "--replicates", "2", "--replicate-particles", "40", "--iterations", "1", "--particles", "30",
            "--simulations", "3", "--workers", "1", "--seed", "4", "--k-factor", "12.5",
        ]
    )
    assert code == 0
    data = json.loads(report.read_text())
    assert data["team"] == "MIA"
    assert data["config"]["league_log"] == str(league)
    assert data["config"]["k_factor"] == 12.5


def test_cli_league_log_needs_team(tmp_path):
    league = tmp_path / "league.csv"
    _write_league_log(league)
    with pytest.raises(SystemExit):
        main(["baseline", "--league-log", str(league)])
    with pytest.raises(SystemExit):
        main(["baseline", "--league-log", str(league), "--input", str(league), "--team", "LAL"])


def test_cli_filter_reports_degenerate_filter(tmp_path):
    path = tmp_path / "hopeless.csv"
    pd.DataFrame(
        {"time": [1], "home": [0], "own_form": [0.0], "opp_rating": [1.0e6], "outcome": [1]}
    ).to_csv(path, index=False)
    assert main(["filter", "--input", str(path), "--particles", "10"]) == 1


def test_cli_without_command_prints_help():
    assert main([]) == 1
