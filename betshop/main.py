"""CLI entry point for the betting shop."""
import logging
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click
from rich.console import Console
from rich.table import Table
from rich.logging import RichHandler

from .codes import refresh_codebook
from .config import DB_PATH, SPORTS, ODDS_API_KEY, SCORES_DAYS_FROM
from .database import get_connection, init_database, seed_users, get_codes, get_user, list_tickets
from .errors import ValidationError
from .models import BET_TYPES, TICKET_STATUSES
from .odds_api import OddsAPIClient
from .reports import daily_report
from .settlement import auto_settle, settle_ticket
from .tickets import place_ticket

console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True)]
)
logger = logging.getLogger(__name__)

STATUS_COLORS = {"open": "yellow", "won": "red", "lost": "green", "void": "dim"}

user_option = click.option("--user", "-u", required=True, envvar="BETSHOP_USER", help="Verified user id")


def _open_db(ctx):
    conn = get_connection(ctx.obj["db_path"])
    init_database(conn)
    return conn


def _require_api_key():
    if not ODDS_API_KEY:
        console.print("[red]Error: ODDS_API_KEY not set. Please set it in your .env file.[/red]")
        sys.exit(1)


def _fail(message):
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def _price(value):
    if value is None:
        return "-"
    return f"+{value}" if value > 0 else str(value)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--db", "db_path", default=str(DB_PATH), envvar="BETSHOP_DB_PATH", help="SQLite database path")
@click.pass_context
def cli(ctx, debug, db_path):
    """Betting shop code book and ticket CLI."""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


@cli.command()
@click.pass_context
def init(ctx):
    """Initialize the database and seed agents."""
    console.print("[bold]Initializing database...[/bold]")
    conn = _open_db(ctx)
    created = seed_users(conn)
    conn.close()
    console.print(f"[green]Database initialized at {ctx.obj['db_path']}[/green]")
    if created:
        console.print(f"  Seeded agents: {created}")


@cli.command("list-sports")
def list_sports():
    """List sports and their code ranges."""
    table = Table(title="Sports")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Codes", justify="right")

    for key, sport in SPORTS.items():
        start, end = sport["code_range"]
        table.add_row(key, sport["name"], f"{start}-{end}")

    console.print(table)


@cli.command("refresh-codes")
@click.option("--sports", "-s", multiple=True, help="Specific sport keys to refresh")
@click.pass_context
def refresh_codes(ctx, sports):
    """Fetch odds and rebuild the code book."""
    _require_api_key()

    sport_keys = list(sports) if sports else None

    console.print("[bold]Fetching odds from The Odds API...[/bold]")
    if sport_keys:
        console.print(f"Sports: {', '.join(sport_keys)}")

    conn = _open_db(ctx)
    client = OddsAPIClient()
    stats = refresh_codebook(conn, client, sport_keys)
    conn.close()

    console.print("\n[bold green]Code book refreshed![/bold green]")
    console.print(f"  Games processed: {stats['games']}")
    console.print(f"  Codes assigned: {len(stats['codebook'])}")
    console.print(f"  Lines skipped (range full): {stats['skipped']}")
    if stats["malformed"]:
        console.print(f"  [yellow]Malformed games skipped: {stats['malformed']}[/yellow]")
    if stats["failed_sports"]:
        console.print(f"  [yellow]Failed sports: {', '.join(stats['failed_sports'])}[/yellow]")

    if client.requests_remaining is not None:
        console.print(f"\n[dim]API quota: {client.requests_remaining} requests remaining[/dim]")


@cli.command("show-codes")
@click.option("--sport", "-s", help="Only this sport key")
@click.pass_context
def show_codes(ctx, sport):
    """Show the current code book."""
    conn = _open_db(ctx)
    codes = get_codes(conn, sport)
    conn.close()

    if not codes:
        console.print("[yellow]No codes found. Run refresh-codes first.[/yellow]")
        return

    table = Table(title="Code Book")
    table.add_column("Code", justify="right", style="cyan")
    table.add_column("Sport")
    table.add_column("Team")
    table.add_column("ML", justify="right")
    table.add_column("Pts", justify="right")
    table.add_column("Over", justify="right")
    table.add_column("Under", justify="right")
    table.add_column("Game Time")

    for c in codes:
        table.add_row(
            str(c.code),
            c.sport,
            c.team[:24],
            _price(c.ml),
            f"{c.points:g}" if c.points is not None else "-",
            _price(c.over),
            _price(c.under),
            c.game_time or "-",
        )

    console.print(table)


@cli.command("place-ticket")
@user_option
@click.option("--code", "-c", required=True, type=int, help="Code from the code book")
@click.option("--bet", "-b", required=True, type=click.Choice(BET_TYPES), help="Market")
@click.option("--stake", required=True, type=float, help="Amount risked")
@click.option("--pts", help="Points line for Over/Under (defaults to the code's)")
@click.option("--client-name", default="", help="Client name")
@click.option("--client-phone", default="", help="Client phone")
@click.pass_context
def place_ticket_cmd(ctx, user, code, bet, stake, pts, client_name, client_phone):
    """Place a ticket against a code."""
    conn = _open_db(ctx)
    try:
        ticket = place_ticket(conn, user, code, bet, stake, pts, client_name, client_phone)
    except ValidationError as e:
        _fail(e)
    finally:
        conn.close()

    console.print(f"[green]Ticket #{ticket.id} placed[/green]")
    console.print(f"  {ticket.sport} • {ticket.team} • {ticket.bet} {ticket.points or ''} @ {_price(ticket.price)}")
    console.print(f"  Risk: ${ticket.stake:.2f}")


@cli.command("tickets")
@user_option
@click.option("--status", type=click.Choice(TICKET_STATUSES), help="Only tickets with this status")
@click.pass_context
def show_tickets(ctx, user, status):
    """List a user's tickets."""
    conn = _open_db(ctx)
    tickets = list_tickets(conn, user, status)
    conn.close()

    if not tickets:
        console.print("[yellow]No tickets found.[/yellow]")
        return

    table = Table(title="Tickets")
    table.add_column("ID", justify="right")
    table.add_column("Date")
    table.add_column("Client")
    table.add_column("Sport")
    table.add_column("Team", style="cyan")
    table.add_column("Bet")
    table.add_column("Pts", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Risk", justify="right")
    table.add_column("Status", justify="center")

    for t in tickets:
        color = STATUS_COLORS.get(t.status, "white")
        client = t.client_name + (f" ({t.client_phone})" if t.client_phone else "")
        table.add_row(
            str(t.id),
            t.created_at.strftime("%Y-%m-%d %H:%M"),
            client or "-",
            t.sport,
            t.team[:24],
            t.bet,
            t.points or "",
            _price(t.price),
            f"{t.stake:.2f}",
            f"[{color}]{t.status}[/{color}]",
        )

    console.print(table)


@cli.command("settle")
@user_option
@click.argument("ticket_id", type=int)
@click.argument("action", type=click.Choice(["win", "lose", "void"]))
@click.pass_context
def settle(ctx, user, ticket_id, action):
    """Settle one open ticket by hand."""
    conn = _open_db(ctx)
    try:
        ticket, balance = settle_ticket(conn, user, ticket_id, action)
    except ValidationError as e:
        _fail(e)
    finally:
        conn.close()

    console.print(f"[green]Ticket #{ticket.id} is now {ticket.status}[/green]")
    console.print(f"  Balance: {balance:.2f}")


@cli.command("auto-settle")
@user_option
@click.option("--days", "-d", default=SCORES_DAYS_FROM, help="Days of scores to look back (max 3)")
@click.pass_context
def auto_settle_cmd(ctx, user, days):
    """Settle open tickets from final scores."""
    _require_api_key()

    console.print(f"[bold]Settling open tickets from the last {days} days of scores...[/bold]")

    conn = _open_db(ctx)
    client = OddsAPIClient()
    stats = auto_settle(conn, user, client, days)
    user_row = get_user(conn, user)
    conn.close()

    console.print("\n[bold green]Auto-settle complete![/bold green]")
    console.print(f"  Tickets settled: {stats['settled']}")
    if stats["ids"]:
        console.print(f"  IDs: {', '.join(str(i) for i in stats['ids'])}")
    console.print(f"  Still open (no final score): {stats['unresolved']}")
    if stats["failed_sports"]:
        console.print(f"  [yellow]Failed sports: {', '.join(stats['failed_sports'])}[/yellow]")
    if user_row:
        console.print(f"  Balance: {user_row.balance:.2f}")


@cli.command("balance")
@user_option
@click.pass_context
def balance(ctx, user):
    """Show a user's running balance."""
    conn = _open_db(ctx)
    user_row = get_user(conn, user)
    conn.close()

    if user_row is None:
        _fail("unknown user")

    console.print(f"[bold]{user_row.name}[/bold] ({user_row.center})")
    console.print(f"  Balance: {user_row.balance:.2f}")


@cli.command("daily-report")
@user_option
@click.option("--from", "date_from", type=click.DateTime(formats=["%Y-%m-%d"]), help="First day (YYYY-MM-DD)")
@click.option("--to", "date_to", type=click.DateTime(formats=["%Y-%m-%d"]), help="Last day (YYYY-MM-DD)")
@click.option("--tz", "tz_name", default="UTC", help="Timezone that defines a day (e.g. America/Mexico_City)")
@click.pass_context
def daily_report_cmd(ctx, user, date_from, date_to, tz_name):
    """Show per-day risk, payout and profit."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        _fail(f"unknown timezone {tz_name}")
    conn = _open_db(ctx)
    rows = daily_report(
        conn,
        user,
        date_from.date() if date_from else None,
        date_to.date() if date_to else None,
        tz,
    )
    conn.close()

    if not rows:
        console.print("[yellow]No tickets in that range.[/yellow]")
        return

    table = Table(title="Daily Report")
    table.add_column("Day", style="cyan")
    table.add_column("Tickets", justify="right")
    table.add_column("Risk", justify="right")
    table.add_column("Payout", justify="right")
    table.add_column("Profit", justify="right", style="green")

    for row in rows:
        table.add_row(
            row["day"],
            str(row["tickets"]),
            f"{row['risk']:.2f}",
            f"{row['payout']:.2f}",
            f"{row['profit']:.2f}",
        )

    console.print(table)


@cli.command("quota")
def check_quota():
    """Check API quota remaining."""
    _require_api_key()

    client = OddsAPIClient()
    # Make a free request to get quota info
    try:
        client.get_sports()
        console.print("[bold]API Quota Status[/bold]")
        console.print(f"  Requests used: {client.requests_used}")
        console.print(f"  Requests remaining: {client.requests_remaining}")
    except Exception as e:
        console.print(f"[red]Error checking quota: {e}[/red]")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
