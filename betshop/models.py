"""Data models for the betting shop."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# Bet types
ML = "ML"
OVER = "Over"
UNDER = "Under"
BET_TYPES = (ML, OVER, UNDER)

# Ticket statuses
OPEN = "open"
WON = "won"
LOST = "lost"
VOID = "void"
TICKET_STATUSES = (OPEN, WON, LOST, VOID)

# Settlement outcomes
WIN = "win"
LOSE = "lose"
PUSH = "void"
UNRESOLVED = "unresolved"
OUTCOME_STATUS = {WIN: WON, LOSE: LOST, PUSH: VOID}


@dataclass
class LineEntry:
    """One team's prices in one game, ready to be coded."""
    sport_key: str
    sport: str
    team: str
    ml: Optional[int]
    over: Optional[int]
    under: Optional[int]
    points: Optional[float]
    game_time: str


@dataclass
class GameLine:
    """A feed game reduced to the single quote set the shop uses."""
    sport_key: str
    sport: str
    home_team: str
    away_team: str
    commence_time: datetime
    away_ml: Optional[int] = None
    home_ml: Optional[int] = None
    over: Optional[int] = None
    under: Optional[int] = None
    points: Optional[float] = None


@dataclass
class Code:
    """A numbered betting line in the code book."""
    code: int
    sport_key: str
    sport: str
    team: str
    ml: Optional[int]
    over: Optional[int]
    under: Optional[int]
    points: Optional[float]
    game_time: str
    created_at: Optional[datetime] = None


@dataclass
class User:
    """An agent and their running balance with the shop."""
    id: str
    username: str
    name: str
    center: str
    phone: str = ""
    balance: float = 0.0


@dataclass
class Ticket:
    """A single wager placed by an agent against a code."""
    id: Optional[int]
    user_id: str
    center: str
    sport_key: str
    sport: str
    team: str
    bet: str  # ML, Over, Under
    points: Optional[str]
    price: int
    stake: float
    status: str = OPEN  # open, won, lost, void
    client_name: str = ""
    client_phone: str = ""
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None


@dataclass
class ScoreRecord:
    """A game from the scores feed, normalized to flat home/away scores."""
    home_team: str
    away_team: str
    completed: bool
    home_score: float
    away_score: float
    commence_time: datetime
    external_id: Optional[str] = None
