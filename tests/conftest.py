"""Shared pytest fixtures for betshop tests."""
from typing import Dict, List

import pytest
import requests

from betshop.database import get_connection, init_database, seed_users, upsert_code
from betshop.models import Code, ScoreRecord
from betshop.odds_api import normalize_score_event


class FakeFeed:
    """Stands in for OddsAPIClient: canned odds/scores per sport, or a failure."""

    def __init__(self, odds: Dict[str, List[dict]] = None, scores: Dict[str, List[dict]] = None, failing=()):
        self.odds = odds or {}
        self.scores = scores or {}
        self.failing = set(failing)
        self.calls = []

    def _check(self, sport_key):
        self.calls.append(sport_key)
        if sport_key in self.failing:
            raise requests.ConnectionError(f"feed down for {sport_key}")

    def get_odds(self, sport_key):
        self._check(sport_key)
        return self.odds.get(sport_key, [])

    def iter_scores(self, sport_key, days_from=3):
        self._check(sport_key)
        for event in self.scores.get(sport_key, []):
            yield normalize_score_event(event)


def odds_event(sport_key, away, home, commence, away_ml=None, home_ml=None,
               over=None, under=None, point=None, sport_title=None):
    markets = []
    h2h = []
    if away_ml is not None:
        h2h.append({"name": away, "price": away_ml})
    if home_ml is not None:
        h2h.append({"name": home, "price": home_ml})
    if h2h:
        markets.append({"key": "h2h", "outcomes": h2h})
    totals = []
    if over is not None:
        totals.append({"name": "Over", "price": over, "point": point})
    if under is not None:
        totals.append({"name": "Under", "price": under, "point": point})
    if totals:
        markets.append({"key": "totals", "outcomes": totals})
    return {
        "id": f"{away}-{home}-{commence}",
        "sport_key": sport_key,
        "sport_title": sport_title,
        "commence_time": commence,
        "home_team": home,
        "away_team": away,
        "bookmakers": [{"key": "draftkings", "title": "DraftKings", "markets": markets}],
    }


def score_event(home, away, home_score, away_score, completed=True, commence="2026-10-18T23:00:00Z"):
    return {
        "id": f"{away}-{home}-{commence}",
        "home_team": home,
        "away_team": away,
        "completed": completed,
        "commence_time": commence,
        "scores": [
            {"name": home, "score": str(home_score)},
            {"name": away, "score": str(away_score)},
        ],
    }


def score_record(home, away, home_score, away_score, completed=True, commence="2026-10-18T23:00:00Z"):
    return normalize_score_event(score_event(home, away, home_score, away_score, completed, commence))


@pytest.fixture
def conn():
    """In-memory database with schema and seeded agents."""
    connection = get_connection(":memory:")
    init_database(connection)
    seed_users(connection)
    yield connection
    connection.close()


@pytest.fixture
def codebook(conn):
    """A small code book: one NBA game and one NHL game."""
    codes = [
        Code(200, "basketball_nba", "NBA", "Boston Celtics", -150, -110, -110, 220.5, "2026-10-18T23:30:00+00:00"),
        Code(201, "basketball_nba", "NBA", "Miami Heat", 130, -110, -110, 220.5, "2026-10-18T23:30:00+00:00"),
        Code(400, "icehockey_nhl", "NHL", "Boston Bruins", 120, None, None, None, "2026-10-18T23:00:00+00:00"),
        Code(401, "icehockey_nhl", "NHL", "Toronto Maple Leafs", -140, None, None, None, "2026-10-18T23:00:00+00:00"),
    ]
    for code in codes:
        upsert_code(conn, code)
    conn.commit()
    return {c.code: c for c in codes}
