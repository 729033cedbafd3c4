"""Ticket settlement, by hand or from final scores."""
import logging
import re
import sqlite3
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from .config import SCORES_DAYS_FROM
from .database import apply_settlement, get_ticket, list_tickets
from .errors import TicketNotFound, TicketNotOpen, ValidationError
from .models import (
    ML, OVER, UNDER, OPEN,
    WIN, LOSE, PUSH, UNRESOLVED, OUTCOME_STATUS,
    ScoreRecord, Ticket,
)
from .odds_api import OddsAPIClient, fetch_scores
from .payout import balance_delta

logger = logging.getLogger(__name__)

# Plain decimal numbers only: no exponents, underscores, nan or inf
POINTS_PATTERN = re.compile(r"[-+]?(\d+(\.\d*)?|\.\d+)")


def parse_points(value) -> Optional[float]:
    """Parse a points line such as '8.5' or '8,5'. Returns None if unparsable."""
    if value is None:
        return None
    text = str(value).strip().replace(",", ".")
    if not POINTS_PATTERN.fullmatch(text):
        return None
    return float(text)


def index_by_team(records: Iterable[ScoreRecord]) -> Dict[str, List[ScoreRecord]]:
    """Map lowercased team name to every game it played, home or away."""
    index = defaultdict(list)
    for record in records:
        index[record.home_team.lower()].append(record)
        index[record.away_team.lower()].append(record)
    return index


def find_final_game(team: str, index: Dict[str, List[ScoreRecord]]) -> Optional[ScoreRecord]:
    """Most recent completed game for the team; the first listed wins ties."""
    completed = [r for r in index.get(team.lower(), []) if r.completed]
    if not completed:
        return None
    return max(completed, key=lambda r: r.commence_time)


def resolve(ticket: Ticket, records: Iterable[ScoreRecord], index: Dict[str, List[ScoreRecord]] = None) -> str:
    """
    Work out a ticket's outcome from its sport's score records.

    Returns one of win, lose, void or unresolved. Unresolved means there is
    no completed game for the team yet, the points line can't be read, or
    the bet type is unknown; the ticket should stay open.
    """
    if index is None:
        index = index_by_team(records)

    game = find_final_game(ticket.team, index)
    if game is None:
        return UNRESOLVED

    home, away = game.home_score, game.away_score

    if ticket.bet == ML:
        if home == away:
            return PUSH
        winner = game.home_team if home > away else game.away_team
        return WIN if winner.lower() == ticket.team.lower() else LOSE

    if ticket.bet in (OVER, UNDER):
        points = parse_points(ticket.points)
        if points is None:
            return UNRESOLVED
        total = home + away
        if total == points:
            return PUSH
        if ticket.bet == OVER:
            return WIN if total > points else LOSE
        return WIN if total < points else LOSE

    return UNRESOLVED


def settle_ticket(conn: sqlite3.Connection, user_id: str, ticket_id: int, action: str) -> Tuple[Ticket, float]:
    """
    Settle one of the user's open tickets by hand.

    Args:
        conn: Database connection
        user_id: Verified id of the requesting user
        ticket_id: Ticket to settle
        action: win, lose or void

    Returns:
        Tuple of (updated ticket, user's new balance)

    Raises:
        ValidationError: invalid action
        TicketNotFound: no such ticket for this user
        TicketNotOpen: ticket already settled
    """
    if action not in OUTCOME_STATUS:
        raise ValidationError("invalid action")

    ticket = get_ticket(conn, ticket_id, user_id)
    if ticket is None:
        raise TicketNotFound("not found")
    if ticket.status != OPEN:
        raise TicketNotOpen("already settled")

    delta = balance_delta(action, ticket.stake, ticket.price)
    balance = apply_settlement(conn, ticket.id, user_id, OUTCOME_STATUS[action], delta)
    if balance is None:
        raise TicketNotOpen("already settled")

    logger.info(f"Ticket {ticket.id} settled by hand: {action} ({delta:+.2f})")
    return get_ticket(conn, ticket.id, user_id), balance


def auto_settle(
    conn: sqlite3.Connection,
    user_id: str,
    client: OddsAPIClient = None,
    days_from: int = SCORES_DAYS_FROM
) -> Dict[str, object]:
    """
    Settle a user's open tickets from the scores feed.

    Tickets are grouped by sport and each sport's scores are fetched once.
    A sport whose feed fails is skipped and its tickets stay open; the rest
    are still settled.

    Returns:
        Stats dict with settled count, settled ids, unresolved count and failed sports
    """
    stats = {"settled": 0, "ids": [], "unresolved": 0, "failed_sports": []}

    open_tickets = list_tickets(conn, user_id, status=OPEN)
    if not open_tickets:
        return stats

    if client is None:
        client = OddsAPIClient()

    by_sport = defaultdict(list)
    for ticket in open_tickets:
        by_sport[ticket.sport_key].append(ticket)

    for sport_key, tickets in by_sport.items():
        records = fetch_scores(client, sport_key, days_from)
        if records is None:
            stats["failed_sports"].append(sport_key)
            continue

        index = index_by_team(records)
        for ticket in tickets:
            outcome = resolve(ticket, records, index)
            if outcome == UNRESOLVED:
                stats["unresolved"] += 1
                continue

            delta = balance_delta(outcome, ticket.stake, ticket.price)
            balance = apply_settlement(conn, ticket.id, user_id, OUTCOME_STATUS[outcome], delta)
            if balance is None:
                logger.info(f"Ticket {ticket.id} was settled elsewhere, skipping")
                continue

            logger.info(f"Ticket {ticket.id} auto-settled: {outcome} ({delta:+.2f})")
            stats["ids"].append(ticket.id)

    stats["settled"] = len(stats["ids"])
    return stats
