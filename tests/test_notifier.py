"""Tests for Telegram consensus alerts. The Telegram Bot is always mocked."""

from unittest.mock import AsyncMock, patch

import pytest
from telegram.error import NetworkError

from wicketwise.config import Config
from wicketwise.models import Analysis, Edge, EdgeType, Pulse, StructuralContext
from wicketwise.notifier import format_consensus_alert, send_consensus_alert, send_telegram_message

CONTEXT = StructuralContext("Flat", 5.0, "Neutral", "Balanced")


def _analysis(edges, level=2, actionable=True) -> Analysis:
    return Analysis(
        match_id="m1", pulse=Pulse(text="p"), context=CONTEXT, consensus_level=level,
        panel_size=3, edges=tuple(edges), is_actionable=actionable,
    )


EDGE = Edge(match_id="m1", market_id="l2", edge_type=EdgeType.INFLATION, confidence=72,
            observation="Line stretched beyond venue par")


@pytest.fixture
def telegram_configured(monkeypatch):
    monkeypatch.setattr(Config, "TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setattr(Config, "TELEGRAM_CHAT_ID", "42")


class TestFormat:
    def test_alert_layout(self, match):
        text = format_consensus_alert(match, _analysis([EDGE]))
        assert text.splitlines() == [
            "CONSENSUS (2/3)",
            "Match: India v Australia",
            "Edge: INFLATION on Total Runs (Innings 1) (72%)",
            "Note: Line stretched beyond venue par",
        ]

    def test_unknown_market_uses_id_and_counts_extra_edges(self, match):
        ghost = Edge(match_id="m1", market_id="ghost", edge_type=EdgeType.COMPRESSION, confidence=60,
                     observation="x" * 300)
        text = format_consensus_alert(match, _analysis([ghost, EDGE], level=3))
        assert "Edge: COMPRESSION on ghost (60%)" in text
        assert "(+1 more edge(s))" in text
        note = next(line for line in text.splitlines() if line.startswith("Note: "))
        assert len(note) == len("Note: ") + 200


class TestSend:
    def test_not_configured_returns_false(self, monkeypatch):
        monkeypatch.setattr(Config, "TELEGRAM_BOT_TOKEN", None)
        assert send_telegram_message("hello") is False

    def test_sends_via_bot(self, telegram_configured):
        with patch("wicketwise.notifier.Bot") as MockBot:
            MockBot.return_value.send_message = AsyncMock()
            assert send_telegram_message("hello") is True
            MockBot.assert_called_once_with(token="123:abc")
            kwargs = MockBot.return_value.send_message.call_args.kwargs
            assert kwargs["chat_id"] == 42
            assert kwargs["text"] == "hello"

    def test_network_error_returns_false(self, telegram_configured):
        with patch("wicketwise.notifier.Bot") as MockBot:
            MockBot.return_value.send_message = AsyncMock(side_effect=NetworkError("offline"))
            assert send_telegram_message("hello") is False

    def test_non_actionable_analysis_not_sent(self, match, telegram_configured):
        with patch("wicketwise.notifier.Bot") as MockBot:
            assert send_consensus_alert(match, _analysis([EDGE], level=1, actionable=False)) is False
            MockBot.assert_not_called()

    def test_actionable_analysis_sent(self, match, telegram_configured):
        with patch("wicketwise.notifier.Bot") as MockBot:
            MockBot.return_value.send_message = AsyncMock()
            assert send_consensus_alert(match, _analysis([EDGE])) is True
            text = MockBot.return_value.send_message.call_args.kwargs["text"]
            assert text.startswith("CONSENSUS (2/3)")
