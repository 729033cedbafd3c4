"""Per-day ledger summaries of an agent's tickets."""
import sqlite3
from datetime import date, timezone, tzinfo
from typing import Dict, List, Optional

from .database import list_tickets
from .models import WON, LOST
from .payout import american_payout


def daily_report(
    conn: sqlite3.Connection,
    user_id: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    tz: tzinfo = timezone.utc
) -> List[Dict]:
    """
    Summarize a user's tickets by the day they were written.

    Each row has the ticket count, total risk (stakes), potential payout and
    the shop's realized profit on settled tickets. Both date bounds are
    inclusive.

    Days are calendar days in ``tz`` (UTC unless given), so a ticket written
    late in the evening local time can land on the next UTC day.
    """
    by_day = {}
    for ticket in list_tickets(conn, user_id):
        created_at = ticket.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        day = created_at.astimezone(tz).date()
        if date_from and day < date_from:
            continue
        if date_to and day > date_to:
            continue

        row = by_day.setdefault(day, {"day": day.isoformat(), "tickets": 0, "risk": 0.0, "payout": 0.0, "profit": 0.0})
        payout = american_payout(ticket.stake, ticket.price)
        row["tickets"] += 1
        row["risk"] += ticket.stake
        row["payout"] += payout
        if ticket.status == WON:
            row["profit"] -= payout - ticket.stake
        elif ticket.status == LOST:
            row["profit"] += ticket.stake

    rows = [by_day[day] for day in sorted(by_day)]
    for row in rows:
        for key in ("risk", "payout", "profit"):
            row[key] = round(row[key], 2)
    return rows
