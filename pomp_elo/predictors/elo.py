"""
Elo ratings as a pure fold over a league game log.

``update_ratings`` maps (ratings, game) to new ratings without mutating its
input; ``elo_history`` threads it through the season in date order. The
tracked team's observation series is then read off the history: the
opponent's pre-game rating becomes the opponent covariate and a rolling win
rate becomes the recent-performance covariate.
"""

from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from ..models.game import ObservationSeries
from .base import BasePredictor


@dataclass(frozen=True)
class EloConfig:
    """Elo bookkeeping constants."""

    k: float = 20.0
    home_advantage: float = 0.0  # Elo points added to the home side
    initial_rating: float = 1500.0
    scale: float = 400.0


def expected_score(rating: float, opponent_rating: float, scale: float = 400.0) -> float:
    """
    Calculate expected score against an opponent.

    Args:
        rating: Rating of the side being scored
        opponent_rating: Opponent's Elo rating
        scale: Rating difference giving 10:1 odds

    Returns:
        Expected probability of winning (0 to 1)
    """
    return 1.0 / (1.0 + 10 ** ((opponent_rating - rating) / scale))


def update_ratings(
    ratings: Mapping[str, float],
    home_team: str,
    away_team: str,
    home_win: bool,
    config: EloConfig = EloConfig(),
) -> Dict[str, float]:
    """
    Ratings after one game. The input mapping is left untouched.

    Args:
        ratings: Current ratings; unseen teams start at ``initial_rating``
        home_team: Home team identifier
        away_team: Away team identifier
        home_win: Whether the home team won
        config: Elo constants

    Returns:
        New ratings dictionary
    """
    r_home = ratings.get(home_team, config.initial_rating)
    r_away = ratings.get(away_team, config.initial_rating)
    e_home = expected_score(r_home + config.home_advantage, r_away, config.scale)
    shift = config.k * ((1.0 if home_win else 0.0) - e_home)

    updated = dict(ratings)
    updated[home_team] = r_home + shift
    updated[away_team] = r_away - shift
    return updated


def _home_win_column(games: pd.DataFrame) -> pd.Series:
    if "home_win" in games.columns:
        return games["home_win"].astype(int)
    if {"home_score", "away_score"} <= set(games.columns):
        return (games["home_score"] > games["away_score"]).astype(int)
    raise ValueError("games need a 'home_win' column or 'home_score'/'away_score' columns")


def elo_history(games: pd.DataFrame, config: Optional[EloConfig] = None) -> pd.DataFrame:
    """
    Pre-game ratings for every game in a league log.

    Args:
        games: DataFrame with date, home_team, away_team and either
            home_win or home_score/away_score
        config: Elo constants

    Returns:
        Copy of ``games`` in date order with home_win, home_elo_pre,
        away_elo_pre and home_expected columns
    """
    config = config or EloConfig()
    history = games.copy()
    history["home_win"] = _home_win_column(history)
    if "date" in history.columns:
        history = history.sort_values("date", kind="stable")
    history = history.reset_index(drop=True)

    ratings: Dict[str, float] = {}
    home_pre: List[float] = []
    away_pre: List[float] = []
    for row in history.itertuples(index=False):
        r_home = ratings.get(row.home_team, config.initial_rating)
        r_away = ratings.get(row.away_team, config.initial_rating)
        home_pre.append(r_home)
        away_pre.append(r_away)
        ratings = update_ratings(ratings, row.home_team, row.away_team, bool(row.home_win), config)

    history["home_elo_pre"] = home_pre
    history["away_elo_pre"] = away_pre
    history["home_expected"] = [
        expected_score(h + config.home_advantage, a, config.scale) for h, a in zip(home_pre, away_pre)
    ]
    return history


def build_team_series(
    games: pd.DataFrame,
    team: str,
    config: Optional[EloConfig] = None,
    form_window: int = 10,
) -> ObservationSeries:
    """
    Observation series for one tracked team from a league game log.

    Recent form is the team's win rate over its previous ``form_window``
    games minus 0.5 (0 before its first game). Attendance is carried over
    when the log has an ``attendance`` column.
    """
    history = elo_history(games, config)
    results: Dict[str, Deque[int]] = defaultdict(lambda: deque(maxlen=form_window))

    def form(name: str) -> float:
        past = results[name]
        return float(np.mean(past)) - 0.5 if past else 0.0

    records = []
    for row in history.itertuples(index=False):
        home_win = int(row.home_win)
        if team in (row.home_team, row.away_team):
            is_home = row.home_team == team
            opponent = row.away_team if is_home else row.home_team
            records.append(
                {
                    "time": len(records) + 1,
                    "date": getattr(row, "date", None),
                    "opponent": opponent,
                    "home": int(is_home),
                    "own_form": form(team),
                    "opp_form": form(opponent),
                    "opp_rating": row.away_elo_pre if is_home else row.home_elo_pre,
                    "attendance": getattr(row, "attendance", None),
                    "outcome": home_win if is_home else 1 - home_win,
                }
            )
        results[row.home_team].append(home_win)
        results[row.away_team].append(1 - home_win)

    if not records:
        raise ValueError(f"No games found for team '{team}'")
    return ObservationSeries.from_records(records, team=team)


class EloPredictor(BasePredictor):
    """Predictor using the tracked team's own Elo rating against opponent ratings."""

    def __init__(self, config: Optional[EloConfig] = None):
        """
        Initialize Elo predictor.

        Args:
            config: Elo constants; ``home_advantage`` goes to whichever side is at home
        """
        super().__init__("elo")
        self.config = config or EloConfig()

    def predict_proba(self, series: ObservationSeries) -> np.ndarray:
        series.require(["opp_rating"])
        cfg = self.config
        rating = cfg.initial_rating
        probs = np.empty(len(series))
        for i in range(len(series)):
            bonus = cfg.home_advantage if series.home[i] == 1 else -cfg.home_advantage
            probs[i] = expected_score(rating + bonus, series.opp_rating[i], cfg.scale)
            rating += cfg.k * (series.outcome[i] - probs[i])
        return probs
