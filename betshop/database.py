"""Database connection and operations for the betting shop."""
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Iterable, Optional, List, Set, Union

from .config import DB_PATH, SEED_AGENTS
from .models import Code, Ticket, User, OPEN


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_connection(db_path: Union[Path, str] = DB_PATH) -> sqlite3.Connection:
    """Create a database connection with row factory enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database transactions."""
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_database(conn: sqlite3.Connection) -> None:
    """Initialize the database schema."""
    conn.executescript("""
        -- Agents and their running balance with the shop
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            username TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            center TEXT NOT NULL,
            phone TEXT DEFAULT '',
            balance REAL NOT NULL DEFAULT 0
        );

        -- Code book: one row per coded team line
        CREATE TABLE IF NOT EXISTS codes (
            code INTEGER PRIMARY KEY,
            sport_key TEXT NOT NULL,
            sport TEXT NOT NULL,
            team TEXT NOT NULL,
            ml INTEGER,
            over INTEGER,
            under INTEGER,
            points REAL,
            game_time TEXT,
            created_at DATETIME
        );

        -- Tickets (never deleted)
        CREATE TABLE IF NOT EXISTS tickets (
            id INTEGER PRIMARY KEY,
            created_at DATETIME NOT NULL,
            user_id TEXT NOT NULL REFERENCES users(id),
            center TEXT,
            client_name TEXT DEFAULT '',
            client_phone TEXT DEFAULT '',
            sport_key TEXT NOT NULL,
            sport TEXT NOT NULL,
            team TEXT NOT NULL,
            bet TEXT NOT NULL,
            pts TEXT,
            price INTEGER NOT NULL,
            stake REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'open',
            settled_at DATETIME
        );

        -- Indexes
        CREATE INDEX IF NOT EXISTS idx_codes_sport ON codes(sport_key);
        CREATE INDEX IF NOT EXISTS idx_tickets_user_status ON tickets(user_id, status);
    """)
    conn.commit()


def seed_users(conn: sqlite3.Connection, agents: Iterable[dict] = SEED_AGENTS) -> int:
    """Create the default agents if the users table is empty."""
    count = conn.execute("SELECT COUNT(*) AS c FROM users").fetchone()["c"]
    if count:
        return 0

    created = 0
    with transaction(conn):
        for agent in agents:
            conn.execute(
                "INSERT INTO users (id, username, name, center, phone, balance) VALUES (?, ?, ?, ?, ?, 0)",
                (agent["id"], agent["username"], agent["name"], agent["center"], agent.get("phone", ""))
            )
            created += 1
    return created


# User operations
def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        name=row["name"],
        center=row["center"],
        phone=row["phone"] or "",
        balance=row["balance"],
    )


def get_user(conn: sqlite3.Connection, user_id: str) -> Optional[User]:
    """Get an agent by id."""
    cursor = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    row = cursor.fetchone()
    if row:
        return _row_to_user(row)
    return None


def get_all_users(conn: sqlite3.Connection) -> List[User]:
    """Get all agents."""
    cursor = conn.execute("SELECT * FROM users ORDER BY id")
    return [_row_to_user(row) for row in cursor.fetchall()]


# Code operations
def _row_to_code(row: sqlite3.Row) -> Code:
    return Code(
        code=row["code"],
        sport_key=row["sport_key"],
        sport=row["sport"],
        team=row["team"],
        ml=row["ml"],
        over=row["over"],
        under=row["under"],
        points=row["points"],
        game_time=row["game_time"],
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
    )


def get_used_codes(conn: sqlite3.Connection, exclude_sports: Iterable[str] = ()) -> Set[int]:
    """Get every code currently in the book, minus those of the given sports."""
    excluded = set(exclude_sports)
    cursor = conn.execute("SELECT code, sport_key FROM codes")
    return {row["code"] for row in cursor.fetchall() if row["sport_key"] not in excluded}


def delete_codes_for_sport(conn: sqlite3.Connection, sport_key: str) -> int:
    """Release all codes held by a sport. Caller commits."""
    cursor = conn.execute("DELETE FROM codes WHERE sport_key = ?", (sport_key,))
    return cursor.rowcount


def upsert_code(conn: sqlite3.Connection, code: Code) -> None:
    """Write a code book row, replacing whatever held that code. Caller commits."""
    created_at = code.created_at or utcnow()
    conn.execute(
        """
        INSERT OR REPLACE INTO codes (code, sport_key, sport, team, ml, over, under, points, game_time, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (code.code, code.sport_key, code.sport, code.team, code.ml, code.over, code.under,
         code.points, code.game_time, created_at.isoformat())
    )


def get_code(conn: sqlite3.Connection, code: int) -> Optional[Code]:
    """Get a code book row by its code."""
    cursor = conn.execute("SELECT * FROM codes WHERE code = ?", (code,))
    row = cursor.fetchone()
    if row:
        return _row_to_code(row)
    return None


def get_codes(conn: sqlite3.Connection, sport_key: Optional[str] = None) -> List[Code]:
    """Get the code book, optionally for one sport, in code order."""
    if sport_key:
        cursor = conn.execute("SELECT * FROM codes WHERE sport_key = ? ORDER BY code", (sport_key,))
    else:
        cursor = conn.execute("SELECT * FROM codes ORDER BY code")
    return [_row_to_code(row) for row in cursor.fetchall()]


# Ticket operations
def _row_to_ticket(row: sqlite3.Row) -> Ticket:
    return Ticket(
        id=row["id"],
        user_id=row["user_id"],
        center=row["center"],
        sport_key=row["sport_key"],
        sport=row["sport"],
        team=row["team"],
        bet=row["bet"],
        points=row["pts"],
        price=row["price"],
        stake=row["stake"],
        status=row["status"],
        client_name=row["client_name"] or "",
        client_phone=row["client_phone"] or "",
        created_at=datetime.fromisoformat(row["created_at"]),
        settled_at=datetime.fromisoformat(row["settled_at"]) if row["settled_at"] else None,
    )


def insert_ticket(conn: sqlite3.Connection, ticket: Ticket) -> int:
    """Insert a new ticket, returning its ID."""
    created_at = ticket.created_at or utcnow()
    cursor = conn.execute(
        """
        INSERT INTO tickets (created_at, user_id, center, client_name, client_phone,
                             sport_key, sport, team, bet, pts, price, stake, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (created_at.isoformat(), ticket.user_id, ticket.center, ticket.client_name, ticket.client_phone,
         ticket.sport_key, ticket.sport, ticket.team, ticket.bet, ticket.points, ticket.price,
         ticket.stake, ticket.status)
    )
    conn.commit()
    return cursor.lastrowid


def get_ticket(conn: sqlite3.Connection, ticket_id: int, user_id: str) -> Optional[Ticket]:
    """Get a ticket by ID, only if it belongs to the given user."""
    cursor = conn.execute("SELECT * FROM tickets WHERE id = ? AND user_id = ?", (ticket_id, user_id))
    row = cursor.fetchone()
    if row:
        return _row_to_ticket(row)
    return None


def list_tickets(conn: sqlite3.Connection, user_id: str, status: Optional[str] = None) -> List[Ticket]:
    """Get a user's tickets, newest first, optionally filtered by status."""
    if status:
        cursor = conn.execute(
            "SELECT * FROM tickets WHERE user_id = ? AND status = ? ORDER BY id DESC",
            (user_id, status)
        )
    else:
        cursor = conn.execute("SELECT * FROM tickets WHERE user_id = ? ORDER BY id DESC", (user_id,))
    return [_row_to_ticket(row) for row in cursor.fetchall()]


def apply_settlement(
    conn: sqlite3.Connection,
    ticket_id: int,
    user_id: str,
    status: str,
    delta: float
) -> Optional[float]:
    """
    Flip an open ticket to its final status and move the owner's balance.

    The status update only matches while the ticket is still open, so a
    ticket that someone else settled first is left alone and None is
    returned. Both writes share one transaction.

    Returns:
        The user's new balance, or None if the ticket was no longer open.
    """
    with transaction(conn):
        cursor = conn.execute(
            "UPDATE tickets SET status = ?, settled_at = ? WHERE id = ? AND user_id = ? AND status = ?",
            (status, utcnow().isoformat(), ticket_id, user_id, OPEN)
        )
        if cursor.rowcount == 0:
            return None
        conn.execute("UPDATE users SET balance = ROUND(balance + ?, 2) WHERE id = ?", (delta, user_id))
        row = conn.execute("SELECT balance FROM users WHERE id = ?", (user_id,)).fetchone()
    return row["balance"]
