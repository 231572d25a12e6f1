"""
Tests for the source adapters.

No test makes a real network call; every adapter gets a mocked
requests.Session.
"""

import random
from unittest.mock import MagicMock

import pytest
import requests

from wicketwise.bookmaker_adapter import BookmakerAdapter, sanitize_session_token
from wicketwise.errors import (
    CredentialRejectedError,
    InvalidInputError,
    QuotaExhaustedError,
    UpstreamUnavailableError,
)
from wicketwise.exchange_adapter import ExchangeAdapter
from wicketwise.models import (
    BridgeStatus,
    MarketClassification,
    MarketSource,
    MarketType,
    MatchFormat,
)
from wicketwise.synthetic_adapter import SyntheticAdapter, fallback_dataset


def _response(status: int = 200, payload=None, reason: str = "OK") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.reason = reason
    response.text = ""
    response.json.return_value = payload
    return response


EVENTS = [{"event": {"id": "31000001", "name": "India v Australia", "venue": "Wankhede"}}]
CATALOGUES = [
    {
        "marketId": "1.201",
        "marketName": "Match Odds",
        "event": {"id": "31000001"},
        "description": {"marketType": "MATCH_ODDS"},
    },
    {
        "marketId": "1.202",
        "marketName": "1st Innings 245 Runs",
        "event": {"id": "31000001"},
        "description": {"marketType": "INNINGS_RUNS"},
    },
]
BOOKS = [
    {
        "marketId": "1.201",
        "totalMatched": 450000,
        "runners": [{"ex": {
            "availableToBack": [{"price": 1.65, "size": 12000}],
            "availableToLay": [{"price": 1.67, "size": 8500}],
        }}],
    },
    {
        "marketId": "1.202",
        "totalMatched": 120000,
        "runners": [{"ex": {
            "availableToBack": [{"price": 1.95, "size": 5000}],
            "availableToLay": [{"price": 2.05, "size": 4500}],
        }}],
    },
]


def _exchange_session(*responses) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.post.side_effect = list(responses)
    return session


class TestExchangeAdapter:
    def test_missing_credentials_rejected_before_any_request(self):
        session = _exchange_session()
        adapter = ExchangeAdapter(app_key="", session_token="", session=session)
        with pytest.raises(InvalidInputError):
            adapter.fetch_live_matches()
        session.post.assert_not_called()

    def test_normalizes_events_into_matches(self):
        session = _exchange_session(_response(payload=EVENTS), _response(payload=CATALOGUES), _response(payload=BOOKS))
        adapter = ExchangeAdapter(app_key="app", session_token="tok", forwarding_prefix="", session=session)

        matches = adapter.fetch_live_matches()

        assert len(matches) == 1
        match = matches[0]
        assert match.id == "31000001"
        assert (match.team_a, match.team_b) == ("India", "Australia")
        assert match.score_a == "Live"
        assert match.format == MatchFormat.T20
        assert match.is_live_realtime is True

        winner, runs = match.market_lines
        assert winner.type == MarketType.MATCH_WINNER
        assert winner.classification == MarketClassification.APEX_STRAT
        assert (winner.back_odds, winner.lay_odds) == (1.65, 1.67)
        assert winner.total_matched == 450000.0
        assert runs.type == MarketType.INN_RUNS
        assert runs.classification == MarketClassification.TACTICAL_PLAY
        assert runs.line_value == 245.0
        assert {line.source for line in match.market_lines} == {MarketSource.BETFAIR}

    def test_malformed_event_entries_are_skipped(self):
        events = [{"event": None}, "garbage", {"event": "31000002"}] + EVENTS
        session = _exchange_session(_response(payload=events), _response(payload=CATALOGUES), _response(payload=BOOKS))
        adapter = ExchangeAdapter(app_key="app", session_token="tok", session=session)

        matches = adapter.fetch_live_matches()

        assert [m.id for m in matches] == ["31000001"]
        assert len(matches[0].market_lines) == 2

    def test_sends_auth_headers_and_forwarding_prefix(self):
        session = _exchange_session(_response(payload=[]))
        adapter = ExchangeAdapter(
            app_key="app",
            session_token="tok",
            base_url="https://api.betfair.com/exchange/betting/rest/v1.0",
            forwarding_prefix="https://relay.example.net/",
            session=session,
        )

        assert adapter.fetch_live_matches() == []

        args, kwargs = session.post.call_args
        assert args[0] == "https://relay.example.net/https://api.betfair.com/exchange/betting/rest/v1.0/listEvents/"
        assert kwargs["headers"]["X-Application"] == "app"
        assert kwargs["headers"]["X-Authentication"] == "tok"

    def test_forbidden_is_credential_rejection(self):
        session = _exchange_session(_response(403, reason="Forbidden"))
        adapter = ExchangeAdapter(app_key="app", session_token="tok", session=session)
        with pytest.raises(CredentialRejectedError):
            adapter.fetch_live_matches()

    def test_rate_limit_is_quota_exhaustion(self):
        session = _exchange_session(_response(429, reason="Too Many Requests"))
        adapter = ExchangeAdapter(app_key="app", session_token="tok", session=session)
        with pytest.raises(QuotaExhaustedError):
            adapter.fetch_live_matches()

    def test_timeout_is_upstream_unavailable(self):
        session = _exchange_session(requests.exceptions.Timeout("slow"))
        adapter = ExchangeAdapter(app_key="app", session_token="tok", session=session)
        with pytest.raises(UpstreamUnavailableError):
            adapter.fetch_live_matches()

    def test_server_error_is_upstream_unavailable(self):
        session = _exchange_session(_response(503, reason="Service Unavailable"))
        adapter = ExchangeAdapter(app_key="app", session_token="tok", session=session)
        with pytest.raises(UpstreamUnavailableError):
            adapter.fetch_live_matches()

    def test_missing_order_book_side_uses_default_prices(self):
        books = [{"marketId": "1.201", "totalMatched": 0, "runners": [{"ex": {}}]}]
        session = _exchange_session(
            _response(payload=EVENTS), _response(payload=CATALOGUES[:1]), _response(payload=books)
        )
        adapter = ExchangeAdapter(app_key="app", session_token="tok", session=session)

        line = adapter.fetch_live_matches()[0].market_lines[0]

        assert (line.back_odds, line.lay_odds) == (1.01, 1.02)


class TestSanitizeSessionToken:
    def test_extracts_token_from_cookie_header(self):
        raw = "csrftoken=abc; sessionid=XYZ123; Path=/; HttpOnly"
        assert sanitize_session_token(raw) == "XYZ123"

    def test_key_match_is_case_insensitive(self):
        assert sanitize_session_token("SessionID=tok42;path=/") == "tok42"

    def test_bare_token_is_trimmed(self):
        assert sanitize_session_token("  abcdef  ") == "abcdef"

    def test_empty_input(self):
        assert sanitize_session_token(None) == ""
        assert sanitize_session_token("") == ""


def _bookmaker_session(*responses) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.get.side_effect = list(responses)
    return session


BOOKMAKER_MATCHES = {
    "matches": [
        {
            "id": "jb1",
            "teamA": "Pakistan",
            "teamB": "New Zealand",
            "scoreA": "",
            "scoreB": "",
            "status": "LIVE",
            "format": "T20",
            "venue": "Lahore",
            "overs": "8.3",
            "marketLines": [
                {"id": "jb1-mw", "type": "MATCH_WINNER", "label": "Match Winner",
                 "backOdds": 2.1, "layOdds": 2.14, "totalMatched": 90000},
                {"id": "jb1-ss", "type": "SESSION_RUNS", "label": "10 Over Session",
                 "backOdds": 1.9, "layOdds": 1.95, "classification": "VOID_TRAP"},
                {"id": "jb1-bad", "type": "NOT_A_MARKET", "backOdds": 1.5, "layOdds": 1.6},
            ],
        },
        "garbage",
    ]
}


class TestBookmakerAdapter:
    def test_invalid_credentials_rejected_before_any_request(self):
        session = _bookmaker_session()
        adapter = BookmakerAdapter(username="", session_cookie="abc", session=session)
        with pytest.raises(InvalidInputError):
            adapter.fetch_live_matches()
        session.get.assert_not_called()

    def test_fetch_parses_reclassifies_and_tags(self):
        session = _bookmaker_session(_response(payload=BOOKMAKER_MATCHES))
        adapter = BookmakerAdapter(
            username="trader", session_cookie="sessionid=abcdef123; Path=/",
            base_url="https://bridge.test/api", session=session,
        )

        matches = adapter.fetch_live_matches()

        assert len(matches) == 1
        match = matches[0]
        assert match.id == "jb1"
        assert match.score_a == "Live"
        assert [line.id for line in match.market_lines] == ["jb1-mw", "jb1-ss"]
        session_line = match.find_line("jb1-ss")
        assert session_line.classification == MarketClassification.TACTICAL_PLAY
        assert {line.source for line in match.market_lines} == {MarketSource.JEEBET}
        assert adapter.bridge_status == BridgeStatus.RECON_ACTIVE

        args, kwargs = session.get.call_args
        assert args[0] == "https://bridge.test/api/markets"
        assert kwargs["headers"]["Cookie"] == "sessionid=abcdef123"

    def test_unauthorized_is_credential_rejection(self):
        session = _bookmaker_session(_response(401, reason="Unauthorized"))
        adapter = BookmakerAdapter(username="trader", session_cookie="abcdef", session=session)
        with pytest.raises(CredentialRejectedError):
            adapter.fetch_live_matches()

    def test_handshake_synced(self):
        session = _bookmaker_session(_response(payload={"ok": True}))
        adapter = BookmakerAdapter(username="trader", session_cookie="abcdef", session=session)
        log_lines = []

        status = adapter.handshake(on_log=log_lines.append)

        assert status == BridgeStatus.SYNCED
        assert log_lines[0].startswith("[INIT]")
        assert log_lines[-1].startswith("[SUCCESS]")

    def test_handshake_auth_pending_on_rejection(self):
        session = _bookmaker_session(_response(403, reason="Forbidden"))
        adapter = BookmakerAdapter(username="trader", session_cookie="abcdef", session=session)
        assert adapter.handshake() == BridgeStatus.AUTH_PENDING

    def test_handshake_error_when_unreachable(self):
        session = _bookmaker_session(requests.exceptions.ConnectionError("refused"))
        adapter = BookmakerAdapter(username="trader", session_cookie="abcdef", session=session)
        assert adapter.handshake() == BridgeStatus.ERROR

    def test_handshake_offline_with_short_token(self):
        session = _bookmaker_session()
        adapter = BookmakerAdapter(username="trader", session_cookie="abc", session=session)
        assert adapter.handshake() == BridgeStatus.OFFLINE
        session.get.assert_not_called()


class TestSyntheticAdapter:
    def test_fallback_dataset_is_the_fixed_seed(self):
        matches = fallback_dataset()
        assert [m.id for m in matches] == ["m1", "m2"]
        assert matches[0].name == "India v Australia"
        assert matches[0].find_line("ml1_1").back_odds == 1.65
        assert matches[0].find_line("ml1_3").classification == MarketClassification.VOID_TRAP
        assert all(line.source == MarketSource.MOCK for m in matches for line in m.market_lines)

    def test_fallback_dataset_returns_fresh_copies(self):
        first = fallback_dataset()
        first[0].market_lines[0].back_odds = 99.0
        assert fallback_dataset()[0].market_lines[0].back_odds == 1.65

    def test_prices_stay_near_seed(self):
        adapter = SyntheticAdapter(rng=random.Random(7))
        for _ in range(25):
            for match in adapter.fetch_live_matches():
                for line in match.market_lines:
                    seed = next(
                        s for s in fallback_dataset() if s.id == match.id
                    ).find_line(line.id)
                    assert abs(line.back_odds - seed.back_odds) <= 0.031
                    assert line.lay_odds > line.back_odds
                    assert line.back_liquidity >= 500
                    assert line.total_matched >= seed.total_matched

    def test_overs_advance_one_ball_per_poll(self):
        adapter = SyntheticAdapter(rng=random.Random(1))
        overs = [adapter.fetch_live_matches()[0].overs for _ in range(6)]
        assert overs == ["16.2", "16.3", "16.4", "16.5", "17.0", "17.1"]

    def test_seeded_rng_is_reproducible(self):
        a = SyntheticAdapter(rng=random.Random(3)).fetch_live_matches()
        b = SyntheticAdapter(rng=random.Random(3)).fetch_live_matches()
        assert [line.back_odds for line in a[0].market_lines] == [line.back_odds for line in b[0].market_lines]
