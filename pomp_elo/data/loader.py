"""Data loader for observation tables, league game logs and reports."""

import json
import math
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

from ..models.game import ObservationSeries
from ..models.params import ParameterVector
from ..pomp.variants import build_model
from ..predictors.elo import build_team_series
from ..simulation.simulator import SimulationConfig, Simulator

# Alternative spellings accepted for the canonical observation columns.
COLUMN_ALIASES = {
    "t": "time",
    "game": "time",
    "game_number": "time",
    "is_home": "home",
    "home_flag": "home",
    "form": "own_form",
    "own_covariate": "own_form",
    "team_form": "own_form",
    "opp_covariate": "opp_form",
    "opponent_form": "opp_form",
    "opp_elo": "opp_rating",
    "opponent_elo": "opp_rating",
    "opponent_rating": "opp_rating",
    "crowd": "attendance",
    "win": "outcome",
    "result": "outcome",
    "opp": "opponent",
}


class DataLoader:
    """Loads observation tables from CSV or JSON files and writes reports."""

    @staticmethod
    def load_frame(file_path: str) -> pd.DataFrame:
        """
        Load a table from CSV or JSON.

        JSON may be a list of row objects or an object with a ``games`` list.

        Args:
            file_path: Path to the table

        Returns:
            DataFrame with raw columns
        """
        path = Path(file_path)
        if path.suffix.lower() == ".json":
            with open(path, "r") as f:
                data = json.load(f)
            rows = data.get("games", []) if isinstance(data, dict) else data
            return pd.DataFrame(rows)
        return pd.read_csv(path)

    @staticmethod
    def normalize_columns(frame: pd.DataFrame) -> pd.DataFrame:
        renamed = {}
        for column in frame.columns:
            key = str(column).strip().lower()
            renamed[column] = COLUMN_ALIASES.get(key, key)
        return frame.rename(columns=renamed)

    @staticmethod
    def load_series(file_path: str, team: Optional[str] = None) -> ObservationSeries:
        """
        Load one tracked team's observation series.

        If the table has a ``team`` column, ``team`` selects its rows.

        Args:
            file_path: Path to CSV or JSON table
            team: Tracked team to select

        Returns:
            ObservationSeries
        """
        frame = DataLoader.normalize_columns(DataLoader.load_frame(file_path))
        if "team" in frame.columns:
            if team is None:
                teams = frame["team"].dropna().unique()
                if len(teams) != 1:
                    raise ValueError(f"Table holds {len(teams)} teams; choose one with --team")
                team = str(teams[0])
            frame = frame[frame["team"] == team]
        return ObservationSeries.from_frame(frame, team=team)

    @staticmethod
    def load_league_games(file_path: str) -> pd.DataFrame:
        """Load a league game log (date, home_team, away_team, result columns)."""
        frame = DataLoader.load_frame(file_path)
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        return frame

    @staticmethod
    def load_league_series(file_path: str, team: Optional[str], form_window: int = 10) -> ObservationSeries:
        """
        Build one tracked team's observation series from a league game log.

        Opponent ratings come from an ELO fold over every game in the log;
        form covariates are rolling win rates over ``form_window`` games.

        Args:
            file_path: Path to the league log (CSV or JSON)
            team: Tracked team
            form_window: Games in the rolling form window

        Returns:
            ObservationSeries
        """
        if not team:
            raise ValueError("A tracked team is required to read a league game log")
        games = DataLoader.load_league_games(file_path)
        return build_team_series(games, team, form_window=form_window)

    @staticmethod
    def save_report(report: Dict, file_path: str) -> None:
        """
        Save a report dictionary to JSON.

        Args:
            report: Report to save; numpy scalars and non-finite floats are converted
            file_path: Output file path
        """
        with open(file_path, "w") as f:
            json.dump(_jsonable(report), f, indent=2)

    @staticmethod
    def save_frame(frame: pd.DataFrame, file_path: str) -> None:
        frame.to_csv(file_path, index=False)

    @staticmethod
    def create_sample_data(output_path: str, n_games: int = 82, seed: int = 7) -> ObservationSeries:
        """
        Create a synthetic season for testing.

        Covariates are drawn at random; outcomes are simulated from the
        covariate-opponent model at moderate parameter values.

        Args:
            output_path: Path to save the CSV
            n_games: Season length
            seed: Random seed

        Returns:
            The generated ObservationSeries
        """
        rng = np.random.default_rng(seed)
        covariates = ObservationSeries(
            time=np.arange(1, n_games + 1),
            home=rng.integers(0, 2, size=n_games),
            own_form=np.round(rng.uniform(-0.3, 0.3, size=n_games), 3),
            opp_form=np.round(rng.uniform(-0.3, 0.3, size=n_games), 3),
            opp_rating=np.round(rng.normal(1500.0, 80.0, size=n_games), 1),
            attendance=np.round(rng.uniform(15000.0, 21000.0, size=n_games)),
            outcome=np.zeros(n_games),
            dates=tuple(str(d.date()) for d in pd.date_range("2023-10-24", periods=n_games, freq="2D")),
            team="SAMPLE",
        )
        params = ParameterVector(beta1=20.0, sigma=10.0, alpha=0.1, home_court_advantage=0.35)
        simulator = Simulator(
            build_model("covariate"),
            SimulationConfig(num_simulations=1, random_seed=seed, parallel_workers=1),
        )
        series = simulator.simulated_series(covariates, params)
        DataLoader.save_frame(series.to_frame(), output_path)
        return series


def _jsonable(value):
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, np.ndarray):
        return [_jsonable(v) for v in value.tolist()]
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating, float)):
        value = float(value)
        return value if math.isfinite(value) else None
    if isinstance(value, np.bool_):
        return bool(value)
    return value
