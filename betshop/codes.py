"""Numeric code allocation for the shop's code book."""
import logging
import sqlite3
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .config import CODE_RANGES
from .database import delete_codes_for_sport, get_used_codes, transaction, upsert_code, utcnow
from .lines import normalize_games, team_lines
from .models import Code, LineEntry
from .odds_api import OddsAPIClient, fetch_all_odds

logger = logging.getLogger(__name__)


def check_ranges_disjoint(ranges: Mapping[str, Tuple[int, int]]) -> None:
    """Raise ValueError if any two sports share a code."""
    ordered = sorted(ranges.items(), key=lambda item: item[1][0])
    for key, (start, end) in ordered:
        if start > end:
            raise ValueError(f"Code range for {key} is empty: {start}-{end}")
    for (key_a, (_, end_a)), (key_b, (start_b, _)) in zip(ordered, ordered[1:]):
        if start_b <= end_a:
            raise ValueError(f"Code ranges for {key_a} and {key_b} overlap")


check_ranges_disjoint(CODE_RANGES)


def next_code(
    sport_key: str,
    used: Set[int],
    ranges: Mapping[str, Tuple[int, int]] = CODE_RANGES
) -> Optional[int]:
    """
    Lowest free code in the sport's range.

    Returns None for an unknown sport or when every code in the range is
    taken. The caller must add the returned code to ``used`` before asking
    for the next one.
    """
    bounds = ranges.get(sport_key)
    if bounds is None:
        return None
    start, end = bounds
    for code in range(start, end + 1):
        if code not in used:
            return code
    return None


def allocate_codes(
    lines: Iterable[LineEntry],
    used: Set[int],
    ranges: Mapping[str, Tuple[int, int]] = CODE_RANGES
) -> Tuple[List[Code], List[LineEntry]]:
    """
    Give each line the next free code of its sport, in order.

    ``used`` is updated in place. Lines that cannot be coded are returned
    separately instead of stopping the pass.

    Returns:
        Tuple of (coded lines, skipped lines)
    """
    coded = []
    skipped = []
    for line in lines:
        code = next_code(line.sport_key, used, ranges)
        if code is None:
            logger.warning(f"No code available for {line.sport_key} / {line.team}, skipping")
            skipped.append(line)
            continue
        used.add(code)
        coded.append(Code(
            code=code,
            sport_key=line.sport_key,
            sport=line.sport,
            team=line.team,
            ml=line.ml,
            over=line.over,
            under=line.under,
            points=line.points,
            game_time=line.game_time,
        ))
    return coded, skipped


def refresh_codebook(
    conn: sqlite3.Connection,
    client: OddsAPIClient = None,
    sport_keys: List[str] = None
) -> Dict[str, object]:
    """
    Re-derive the code book from fresh odds.

    Sports that fetched successfully give up their old codes and are coded
    again from the bottom of their range. Sports whose fetch failed keep the
    codes they had.

    Args:
        conn: Database connection
        client: Odds feed client (creates one if not provided)
        sport_keys: Sports to refresh (all configured sports if None)

    Returns:
        Stats dict with the new codes, game count, skipped lines, malformed
        games and failed sports
    """
    if sport_keys is None:
        sport_keys = list(CODE_RANGES.keys())

    fetched = dict(fetch_all_odds(client, sport_keys))
    failed = [key for key in sport_keys if key not in fetched]

    events = [event for games in fetched.values() for event in games]
    games = normalize_games(events)
    lines = [line for game in games for line in team_lines(game)]

    now = utcnow()
    with transaction(conn):
        used = get_used_codes(conn, exclude_sports=fetched.keys())
        for sport_key in fetched:
            delete_codes_for_sport(conn, sport_key)

        coded, skipped = allocate_codes(lines, used)
        for code in coded:
            code.created_at = now
            upsert_code(conn, code)

    logger.info(f"Code book refreshed: {len(coded)} codes from {len(games)} games, {len(skipped)} skipped")
    if failed:
        logger.warning(f"Kept previous codes for failed sports: {', '.join(failed)}")

    return {
        "codebook": coded,
        "games": len(games),
        "skipped": len(skipped),
        "malformed": len(events) - len(games),
        "failed_sports": failed,
    }
