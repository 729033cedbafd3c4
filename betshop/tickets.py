"""Placing tickets against the code book."""
import logging
import math
import sqlite3
from typing import Optional, Union

from .database import get_code, get_ticket, get_user, insert_ticket
from .errors import ValidationError
from .models import BET_TYPES, ML, OVER, Ticket
from .settlement import parse_points

logger = logging.getLogger(__name__)


def _price_for(code, bet: str) -> Optional[int]:
    if bet == ML:
        return code.ml
    if bet == OVER:
        return code.over
    return code.under


def place_ticket(
    conn: sqlite3.Connection,
    user_id: str,
    code: Union[int, str, None],
    bet: Optional[str],
    stake: Union[float, str, None],
    pts: Optional[str] = None,
    client_name: str = "",
    client_phone: str = "",
) -> Ticket:
    """
    Place a ticket for a verified user against a code in the book.

    The price comes from the code for the chosen market. Over/Under tickets
    take the agent's points line when given, otherwise the code's.

    Raises:
        ValidationError: missing or bad fields, unknown code or user,
            or no price for the requested market. Nothing is written.
    """
    if not code or not bet or not stake:
        raise ValidationError("code, bet, stake required")
    if bet not in BET_TYPES:
        raise ValidationError(f"bet must be one of {', '.join(BET_TYPES)}")

    try:
        stake = float(stake)
        code = int(code)
    except (TypeError, ValueError):
        raise ValidationError("code must be an integer and stake a number")
    if not math.isfinite(stake) or stake <= 0:
        raise ValidationError("stake must be a positive number")

    user = get_user(conn, user_id)
    if user is None:
        raise ValidationError("unknown user")

    line = get_code(conn, code)
    if line is None:
        raise ValidationError("code not found")

    price = _price_for(line, bet)
    if price is None:
        raise ValidationError("no price for that market")

    points = None
    if bet != ML:
        if pts not in (None, ""):
            points = str(pts).strip()
            if parse_points(points) is None:
                raise ValidationError(f"invalid points line {pts!r}")
        elif line.points is not None:
            points = str(line.points)
        else:
            raise ValidationError("points line required for Over/Under")

    ticket = Ticket(
        id=None,
        user_id=user.id,
        center=user.center,
        sport_key=line.sport_key,
        sport=line.sport,
        team=line.team,
        bet=bet,
        points=points,
        price=price,
        stake=stake,
        client_name=client_name or "",
        client_phone=client_phone or "",
    )
    ticket_id = insert_ticket(conn, ticket)
    logger.info(f"Ticket {ticket_id}: {user.id} {line.team} {bet} {points or ''} @ {price} for {stake:.2f}")
    return get_ticket(conn, ticket_id, user.id)
