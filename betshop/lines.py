"""Turn odds feed games into per-team lines for the code book."""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .models import GameLine, LineEntry

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

REQUIRED_FIELDS = ("sport_key", "home_team", "away_team")


def parse_commence_time(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 feed timestamp; missing or bad values sort first."""
    if not value:
        return EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparsable commence_time {value!r}")
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _market(bookmaker: Optional[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    if not bookmaker:
        return []
    for market in bookmaker.get("markets") or []:
        if market.get("key") == key:
            return market.get("outcomes") or []
    return []


def normalize_game(event: Dict[str, Any]) -> GameLine:
    """
    Reduce one feed game to the prices the shop quotes.

    Only the first bookmaker is used. Missing markets leave the
    corresponding prices as None.

    Raises:
        ValueError: the game has no sport key or team names
    """
    for field in REQUIRED_FIELDS:
        if not isinstance(event.get(field), str) or not event[field].strip():
            raise ValueError(f"missing {field}")

    sport_key = event["sport_key"]
    bookmakers = event.get("bookmakers") or []
    bookmaker = bookmakers[0] if bookmakers else None

    h2h = {o.get("name"): o.get("price") for o in _market(bookmaker, "h2h")}
    totals = _market(bookmaker, "totals")
    over = next((o for o in totals if re.search("over", str(o.get("name", "")), re.I)), None)
    under = next((o for o in totals if re.search("under", str(o.get("name", "")), re.I)), None)

    points = None
    if over and over.get("point") is not None:
        points = over["point"]
    elif under and under.get("point") is not None:
        points = under["point"]

    return GameLine(
        sport_key=sport_key,
        sport=str(event.get("sport_title") or sport_key.upper()),
        home_team=event["home_team"],
        away_team=event["away_team"],
        commence_time=parse_commence_time(event.get("commence_time")),
        away_ml=h2h.get(event["away_team"]),
        home_ml=h2h.get(event["home_team"]),
        over=over.get("price") if over else None,
        under=under.get("price") if under else None,
        points=points,
    )


def normalize_games(events: Iterable[Dict[str, Any]]) -> List[GameLine]:
    """
    Normalize feed games and order them by sport name, then start time.

    Malformed games are logged and left out.
    """
    games = []
    for event in events:
        try:
            games.append(normalize_game(event))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Skipping malformed feed game {event!r}: {e!r}")
    games.sort(key=lambda g: (g.sport, g.commence_time))
    return games


def team_lines(game: GameLine) -> List[LineEntry]:
    """Split a game into its away line and its home line, in that order."""
    game_time = game.commence_time.isoformat()
    return [
        LineEntry(
            sport_key=game.sport_key,
            sport=game.sport,
            team=team,
            ml=ml,
            over=game.over,
            under=game.under,
            points=game.points,
            game_time=game_time,
        )
        for team, ml in ((game.away_team, game.away_ml), (game.home_team, game.home_ml))
    ]
