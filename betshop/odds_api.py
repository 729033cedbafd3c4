"""Client for The Odds API."""
import time
import logging
from typing import Iterator, Tuple, List, Optional, Dict, Any

import requests

from .config import (
    ODDS_API_KEY,
    ODDS_API_BASE_URL,
    DEFAULT_REGIONS,
    ODDS_MARKETS,
    ODDS_FORMAT,
    API_REQUESTS_PER_MINUTE,
    SCORES_DAYS_FROM,
    SPORTS,
)
from .lines import parse_commence_time
from .models import ScoreRecord

logger = logging.getLogger(__name__)


class Throttle:
    """Spaces feed calls at least ``60 / per_minute`` seconds apart."""

    def __init__(self, per_minute: int):
        self.spacing = 60.0 / per_minute
        self._next_slot = 0.0

    def wait(self):
        delay = self._next_slot - time.monotonic()
        if delay > 0:
            time.sleep(delay)
        self._next_slot = time.monotonic() + self.spacing


def _to_score(value: Any) -> float:
    """Feed scores arrive as strings, numbers or null; missing counts as 0."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparsable score {value!r}, counting as 0")
        return 0.0


def normalize_score_event(event: Dict[str, Any]) -> ScoreRecord:
    """
    Flatten a scores feed game into a ScoreRecord.

    The feed sends either a list of named scores or flat home/away values.
    Named scores win when present and are matched by lowercased team name.
    """
    home_team = str(event.get("home_team") or "")
    away_team = str(event.get("away_team") or "")
    scores = event.get("scores")

    if isinstance(scores, list) and scores:
        by_name = {str(s.get("name") or "").lower(): s.get("score") for s in scores}
        home_score = _to_score(by_name.get(home_team.lower()))
        away_score = _to_score(by_name.get(away_team.lower()))
    else:
        home_score = _to_score(event.get("home_score"))
        away_score = _to_score(event.get("away_score"))

    return ScoreRecord(
        home_team=home_team,
        away_team=away_team,
        completed=bool(event.get("completed")),
        home_score=home_score,
        away_score=away_score,
        commence_time=parse_commence_time(event.get("commence_time")),
        external_id=event.get("id"),
    )


QUOTA_HEADERS = {"remaining": "x-requests-remaining", "used": "x-requests-used"}


class OddsAPIClient:
    """Client for The Odds API."""

    def __init__(
        self,
        api_key: str = ODDS_API_KEY,
        regions: List[str] = None,
        requests_per_minute: int = API_REQUESTS_PER_MINUTE,
    ):
        self.api_key = api_key
        self.base_url = ODDS_API_BASE_URL
        self.regions = regions or DEFAULT_REGIONS
        self.throttle = Throttle(requests_per_minute)
        self.quota: Dict[str, Optional[int]] = dict.fromkeys(QUOTA_HEADERS)

    @property
    def requests_remaining(self) -> Optional[int]:
        """Requests left this month, as of the last response."""
        return self.quota["remaining"]

    @property
    def requests_used(self) -> Optional[int]:
        return self.quota["used"]

    def _record_quota(self, response: requests.Response):
        for name, header in QUOTA_HEADERS.items():
            value = response.headers.get(header)
            if value is not None and value.isdigit():
                self.quota[name] = int(value)
        logger.debug(f"Odds API quota: {self.quota}")

    def _get(self, path: str, **params) -> Any:
        """GET a feed path and return the decoded JSON body."""
        if not self.api_key:
            raise ValueError("ODDS_API_KEY not set. Please set it in your .env file.")

        self.throttle.wait()
        url = f"{self.base_url}/{path}"
        logger.debug(f"GET {url} {params}")
        response = requests.get(url, params={"apiKey": self.api_key, **params}, timeout=30)
        self._record_quota(response)
        response.raise_for_status()
        return response.json()

    def get_sports(self) -> List[Dict[str, Any]]:
        """Get all available sports. This endpoint is free (no quota cost)."""
        return self._get("sports")

    def get_odds(self, sport_key: str) -> List[Dict[str, Any]]:
        """
        Fetch moneyline and totals prices for all games in a sport.

        Args:
            sport_key: The sport key (e.g., 'basketball_nba')

        Returns:
            List of game objects with quotes from various bookmakers
        """
        data = self._get(
            f"sports/{sport_key}/odds",
            regions=",".join(self.regions),
            markets=",".join(ODDS_MARKETS),
            oddsFormat=ODDS_FORMAT,
        )
        return data if isinstance(data, list) else []

    def get_scores(self, sport_key: str, days_from: int = SCORES_DAYS_FROM) -> List[Dict[str, Any]]:
        """
        Fetch scores for completed and live games.

        Args:
            sport_key: The sport key (e.g., 'basketball_nba')
            days_from: Number of days in the past to include (1-3)

        Returns:
            List of game objects with scores
        """
        # The feed only looks back 1 to 3 days
        data = self._get(f"sports/{sport_key}/scores", daysFrom=max(1, min(days_from, 3)))
        return data if isinstance(data, list) else []

    def iter_scores(self, sport_key: str, days_from: int = SCORES_DAYS_FROM) -> Iterator[ScoreRecord]:
        """
        Iterate over recent games as normalized score records.

        In-progress games are included with completed=False.
        """
        for event in self.get_scores(sport_key, days_from):
            yield normalize_score_event(event)


def fetch_all_odds(client: OddsAPIClient = None, sport_keys: List[str] = None) -> Iterator[Tuple[str, List[Dict]]]:
    """
    Fetch odds for all configured sports.

    A failing sport is logged and skipped; the others are still yielded.

    Args:
        client: OddsAPIClient instance (creates one if not provided)
        sport_keys: Sports to fetch (uses all configured sports if not provided)

    Yields:
        Tuple of (sport_key, list of games)
    """
    if client is None:
        client = OddsAPIClient()

    if sport_keys is None:
        sport_keys = list(SPORTS.keys())

    for sport_key in sport_keys:
        try:
            logger.info(f"Fetching odds for {sport_key}")
            games = client.get_odds(sport_key)
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                logger.warning(f"Sport {sport_key} not found or no events available")
            else:
                logger.error(f"Error fetching odds for {sport_key}: {e}")
            continue
        except Exception as e:
            logger.error(f"Error fetching odds for {sport_key}: {e}")
            continue
        yield sport_key, games


def fetch_scores(client: OddsAPIClient, sport_key: str, days_from: int = SCORES_DAYS_FROM) -> Optional[List[ScoreRecord]]:
    """
    Fetch one sport's score records.

    Returns None when the feed fails so the caller can skip the sport.
    """
    try:
        logger.info(f"Fetching scores for {sport_key}")
        return list(client.iter_scores(sport_key, days_from))
    except requests.HTTPError as e:
        if e.response is not None and e.response.status_code == 404:
            logger.warning(f"Sport {sport_key} not found or no scores available")
        else:
            logger.error(f"Error fetching scores for {sport_key}: {e}")
    except Exception as e:
        logger.error(f"Error fetching scores for {sport_key}: {e}")
    return None
