import pytest

from betshop.codes import refresh_codebook
from betshop.database import get_ticket, get_user, list_tickets
from betshop.errors import TicketNotFound, TicketNotOpen, ValidationError
from betshop.models import Ticket
from betshop.settlement import auto_settle, parse_points, resolve, settle_ticket
from betshop.tickets import place_ticket

from conftest import FakeFeed, odds_event, score_event, score_record


def _ticket(team, bet="ML", points=None, price=-110, stake=100):
    return Ticket(None, "u1", "Centro A", "basketball_nba", "NBA", team, bet, points, price, stake)


class TestResolve:

    def test_moneyline(self):
        records = [score_record("Boston Celtics", "Miami Heat", 110, 104)]
        assert resolve(_ticket("Boston Celtics"), records) == "win"
        assert resolve(_ticket("miami heat"), records) == "lose"

    def test_moneyline_tie_is_void(self):
        records = [score_record("Boston Celtics", "Miami Heat", 3, 3)]
        assert resolve(_ticket("Miami Heat"), records) == "void"

    @pytest.mark.parametrize("home,away,expected", [(4, 2, "win"), (3, 2, "lose"), (3, 2.5, "void")])
    def test_over(self, home, away, expected):
        records = [score_record("Boston Celtics", "Miami Heat", home, away)]
        assert resolve(_ticket("Boston Celtics", "Over", "5.5"), records) == expected

    @pytest.mark.parametrize("home,away,expected", [(4, 2, "lose"), (3, 2, "win"), (3, 2.5, "void")])
    def test_under_with_comma_points(self, home, away, expected):
        records = [score_record("Boston Celtics", "Miami Heat", home, away)]
        assert resolve(_ticket("Miami Heat", "Under", "5,5"), records) == expected

    def test_unparsable_points_unresolved(self):
        records = [score_record("Boston Celtics", "Miami Heat", 4, 2)]
        assert resolve(_ticket("Boston Celtics", "Over", "five"), records) == "unresolved"
        assert resolve(_ticket("Boston Celtics", "Over", None), records) == "unresolved"
        for text in ("nan", "inf", "-inf", "1_0", "1e2"):
            assert resolve(_ticket("Boston Celtics", "Over", text), records) == "unresolved"

    def test_game_not_completed_unresolved(self):
        records = [score_record("Boston Celtics", "Miami Heat", 50, 40, completed=False)]
        assert resolve(_ticket("Boston Celtics"), records) == "unresolved"

    def test_team_not_found_unresolved(self):
        records = [score_record("Boston Celtics", "Miami Heat", 50, 40)]
        assert resolve(_ticket("Chicago Bulls"), records) == "unresolved"

    def test_unknown_bet_type_unresolved(self):
        records = [score_record("Boston Celtics", "Miami Heat", 50, 40)]
        assert resolve(_ticket("Boston Celtics", "Spread", "-3.5"), records) == "unresolved"

    def test_latest_completed_game_used(self):
        records = [
            score_record("Boston Celtics", "Miami Heat", 90, 100, commence="2026-10-16T23:00:00Z"),
            score_record("Chicago Bulls", "Boston Celtics", 80, 120, commence="2026-10-18T23:00:00Z"),
            score_record("Boston Celtics", "New York Knicks", 0, 0, completed=False,
                         commence="2026-10-19T23:00:00Z"),
        ]
        assert resolve(_ticket("Boston Celtics"), records) == "win"

    def test_flat_scores_when_no_named_list(self):
        from betshop.odds_api import normalize_score_event
        record = normalize_score_event({
            "home_team": "Boston Celtics", "away_team": "Miami Heat", "completed": True,
            "commence_time": "2026-10-18T23:00:00Z", "scores": None, "home_score": 99, "away_score": None,
        })
        assert (record.home_score, record.away_score) == (99, 0)
        assert resolve(_ticket("Miami Heat"), [record]) == "lose"


def test_parse_points():
    assert parse_points("8,5") == 8.5
    assert parse_points(" 220.5 ") == 220.5
    assert parse_points("") is None
    assert parse_points("-3") == -3.0
    assert parse_points(".5") == 0.5
    for text in ("nan", "inf", "Infinity", "1_0", "1e2", "8.5.1"):
        assert parse_points(text) is None


class TestManualSettlement:

    def test_win_then_lose_scenario(self, conn, codebook):
        first = place_ticket(conn, "u1", 200, "ML", 100)
        second = place_ticket(conn, "u1", 200, "ML", 100)

        ticket, balance = settle_ticket(conn, "u1", first.id, "win")
        assert ticket.status == "won"
        assert ticket.settled_at is not None
        assert balance == pytest.approx(-66.67)

        ticket, balance = settle_ticket(conn, "u1", second.id, "lose")
        assert ticket.status == "lost"
        assert balance == pytest.approx(33.33)

    def test_void_leaves_balance(self, conn, codebook):
        ticket = place_ticket(conn, "u1", 201, "ML", 40)
        settled, balance = settle_ticket(conn, "u1", ticket.id, "void")
        assert settled.status == "void"
        assert balance == 0

    def test_settled_ticket_cannot_be_settled_again(self, conn, codebook):
        ticket = place_ticket(conn, "u1", 201, "ML", 40)
        settle_ticket(conn, "u1", ticket.id, "lose")

        with pytest.raises(TicketNotOpen):
            settle_ticket(conn, "u1", ticket.id, "win")
        assert get_user(conn, "u1").balance == 40

    def test_other_users_ticket_not_found(self, conn, codebook):
        ticket = place_ticket(conn, "u1", 201, "ML", 40)
        with pytest.raises(TicketNotFound):
            settle_ticket(conn, "u2", ticket.id, "win")
        assert get_ticket(conn, ticket.id, "u1").status == "open"

    def test_invalid_action(self, conn, codebook):
        ticket = place_ticket(conn, "u1", 201, "ML", 40)
        with pytest.raises(ValidationError):
            settle_ticket(conn, "u1", ticket.id, "cashout")


class TestAutoSettle:

    def test_failed_sport_is_isolated(self, conn, codebook):
        nba = place_ticket(conn, "u1", 200, "ML", 100)
        nba_total = place_ticket(conn, "u1", 201, "Over", 10)
        nhl = place_ticket(conn, "u1", 400, "ML", 50)
        feed = FakeFeed(
            scores={"basketball_nba": [score_event("Boston Celtics", "Miami Heat", 120, 110)]},
            failing={"icehockey_nhl"},
        )

        stats = auto_settle(conn, "u1", feed)

        assert stats["settled"] == 2
        assert sorted(stats["ids"]) == sorted([nba.id, nba_total.id])
        assert stats["failed_sports"] == ["icehockey_nhl"]
        assert get_ticket(conn, nba.id, "u1").status == "won"
        assert get_ticket(conn, nba_total.id, "u1").status == "won"
        assert get_ticket(conn, nhl.id, "u1").status == "open"
        # -66.67 for the ML win, -9.09 for the Over win at -110
        assert get_user(conn, "u1").balance == pytest.approx(-75.76)

    def test_second_run_changes_nothing(self, conn, codebook):
        ticket = place_ticket(conn, "u1", 201, "ML", 100)
        feed = FakeFeed(scores={"basketball_nba": [score_event("Boston Celtics", "Miami Heat", 112, 100)]})

        first = auto_settle(conn, "u1", feed)
        second = auto_settle(conn, "u1", feed)

        assert first["ids"] == [ticket.id]
        assert second["settled"] == 0
        assert get_user(conn, "u1").balance == 100

    def test_unfinished_games_stay_open(self, conn, codebook):
        ticket = place_ticket(conn, "u1", 200, "ML", 100)
        feed = FakeFeed(scores={"basketball_nba": [
            score_event("Boston Celtics", "Miami Heat", 50, 48, completed=False),
        ]})

        stats = auto_settle(conn, "u1", feed)

        assert stats == {"settled": 0, "ids": [], "unresolved": 1, "failed_sports": []}
        assert get_ticket(conn, ticket.id, "u1").status == "open"

    def test_only_requesting_users_tickets(self, conn, codebook):
        place_ticket(conn, "u2", 200, "ML", 100)
        feed = FakeFeed(scores={"basketball_nba": [score_event("Boston Celtics", "Miami Heat", 112, 100)]})

        stats = auto_settle(conn, "u1", feed)

        assert stats["settled"] == 0
        assert feed.calls == []
        assert list_tickets(conn, "u2", "open")

    def test_ticket_settled_concurrently_is_skipped(self, conn, codebook, monkeypatch):
        ticket = place_ticket(conn, "u1", 201, "ML", 100)
        feed = FakeFeed(scores={"basketball_nba": [score_event("Boston Celtics", "Miami Heat", 90, 100)]})

        from betshop import settlement
        real_resolve = settlement.resolve

        def resolve_after_manual_void(t, records, index=None):
            settle_ticket(conn, "u1", t.id, "void")
            return real_resolve(t, records, index)

        monkeypatch.setattr(settlement, "resolve", resolve_after_manual_void)

        stats = auto_settle(conn, "u1", feed)

        assert stats["settled"] == 0
        assert get_ticket(conn, ticket.id, "u1").status == "void"
        assert get_user(conn, "u1").balance == 0


def test_refreshed_code_ticket_settles_against_balance(conn):
    feed = FakeFeed(odds={"baseball_mlb": [
        odds_event("baseball_mlb", "Yankees", "Red Sox", "2026-10-18T17:00:00Z", away_ml=-150, home_ml=130,
                   sport_title="MLB"),
        odds_event("baseball_mlb", "Mets", "Phillies", "2026-10-18T23:00:00Z", away_ml=110, home_ml=-120,
                   sport_title="MLB"),
    ]})
    stats = refresh_codebook(conn, feed, ["baseball_mlb"])
    away = stats["codebook"][0]
    assert (away.code, away.team, away.ml) == (100, "Yankees", -150)

    first = place_ticket(conn, "u1", away.code, "ML", 100)
    assert (first.team, first.price) == ("Yankees", -150)
    _, balance = settle_ticket(conn, "u1", first.id, "win")
    assert balance == pytest.approx(-66.67)

    second = place_ticket(conn, "u1", away.code, "ML", 100)
    _, balance = settle_ticket(conn, "u1", second.id, "lose")
    assert balance == pytest.approx(33.33)
    assert get_user(conn, "u1").balance == pytest.approx(33.33)
