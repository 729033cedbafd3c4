"""Configuration and settings for the betting shop."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
DB_PATH = Path(os.getenv("BETSHOP_DB_PATH", str(DATA_DIR / "betshop.db")))

# Ensure data directory exists
DATA_DIR.mkdir(exist_ok=True)

# API Configuration
ODDS_API_KEY = os.getenv("ODDS_API_KEY", "")
ODDS_API_BASE_URL = "https://api.the-odds-api.com/v4"

# Rate limiting
API_REQUESTS_PER_MINUTE = 10

# Feed request defaults (US books, moneyline + totals, American prices)
DEFAULT_REGIONS = ["us"]
ODDS_MARKETS = ["h2h", "totals"]
ODDS_FORMAT = "american"
SCORES_DAYS_FROM = 3  # API max is 3 days

# Sports offered by the shop. Each sport owns an inclusive block of codes;
# blocks must never overlap.
SPORTS = {
    "baseball_mlb": {
        "name": "MLB",
        "code_range": (100, 199),
    },
    "basketball_nba": {
        "name": "NBA",
        "code_range": (200, 299),
    },
    "americanfootball_nfl": {
        "name": "NFL",
        "code_range": (300, 399),
    },
    "icehockey_nhl": {
        "name": "NHL",
        "code_range": (400, 499),
    },
}

CODE_RANGES = {key: sport["code_range"] for key, sport in SPORTS.items()}

# Agents created on first init. Credentials live with the auth service.
SEED_AGENTS = [
    {"id": "u1", "username": "agent1", "name": "Ana López", "center": "Centro A", "phone": ""},
    {"id": "u2", "username": "agent2", "name": "Carlos Ruiz", "center": "Centro B", "phone": ""},
]
