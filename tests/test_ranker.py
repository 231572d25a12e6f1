"""Tests for signal ranking and execution-config filters."""

from datetime import datetime, timezone

import pytest

from wicketwise.filters import filter_edges, filter_matches
from wicketwise.models import (
    Analysis,
    Edge,
    EdgeType,
    ExecutionConfig,
    MarketClassification,
    MatchFormat,
    Pulse,
    StructuralContext,
)
from wicketwise.ranker import _calculate_liquidity_score, rank_signals
from tests.conftest import make_match

CONTEXT = StructuralContext("Flat", 5.0, "Neutral", "Balanced")


def _edge(market_id: str, confidence: float = 70.0, edge_type=EdgeType.INFLATION) -> Edge:
    return Edge(match_id="m1", market_id=market_id, edge_type=edge_type, confidence=confidence,
                observation=f"Edge on {market_id}")


def _analysis(edges, level: int = 2, actionable: bool = True, match_id: str = "m1") -> Analysis:
    return Analysis(
        match_id=match_id,
        pulse=Pulse(text="pulse"),
        context=CONTEXT,
        consensus_level=level,
        panel_size=3,
        edges=tuple(edges),
        is_actionable=actionable,
        created_at=datetime.now(timezone.utc),
    )


class TestRankSignals:
    def test_non_actionable_analysis_contributes_nothing(self, match):
        analysis = _analysis([_edge("l1")], level=1, actionable=False)
        assert rank_signals([analysis], {"m1": match}) == []

    def test_sorted_by_score(self, match):
        analysis = _analysis([_edge("l2", confidence=40), _edge("l1", confidence=90)])
        signals = rank_signals([analysis], {"m1": match})

        assert [s.line.id for s in signals] == ["l1", "l2"]
        assert signals[0].score >= signals[1].score
        assert signals[0].tier_score == 1.0
        assert signals[1].tier_score == 0.7

    def test_unknown_market_skipped(self, match):
        signals = rank_signals([_analysis([_edge("ghost"), _edge("l1")])], {"m1": match})
        assert [s.line.id for s in signals] == ["l1"]

    def test_unknown_match_skipped(self, match):
        assert rank_signals([_analysis([_edge("l1")], match_id="zz")], {"m1": match}) == []

    def test_configured_minimum_consensus_applies(self, match):
        config = ExecutionConfig(min_consensus_level=3)
        assert rank_signals([_analysis([_edge("l1")], level=2)], {"m1": match}, config) == []

    def test_significant_drift_scores_highest(self, match):
        match.market_lines[0].initial_odds = 1.20
        signal = rank_signals([_analysis([_edge("l1")])], {"m1": match}, drift_threshold_pct=15.0)[0]
        assert signal.drift.is_significant is True
        assert signal.drift_score == 1.0
        assert "Drift: UP" in signal.explanation

    def test_no_baseline_drift_is_neutral(self, match):
        signal = rank_signals([_analysis([_edge("l1")])], {"m1": match})[0]
        assert signal.drift is None
        assert signal.drift_score == 0.5

    @pytest.mark.parametrize("matched,expected", [(0, 0.0), (1000, 0.0), (100000, 0.5), (10_000_000, 1.0)])
    def test_liquidity_score(self, matched, expected):
        assert _calculate_liquidity_score(matched) == pytest.approx(expected)


class TestFilters:
    def test_strategy_only_view_hides_void_lines(self, match):
        filtered = filter_matches([match], ExecutionConfig(strategy_only_view=True))
        assert [line.id for line in filtered[0].market_lines] == ["l1", "l2"]
        assert len(match.market_lines) == 3

    def test_full_view_keeps_all_lines(self, match):
        filtered = filter_matches([match], ExecutionConfig(strategy_only_view=False))
        assert len(filtered[0].market_lines) == 3

    def test_disallowed_format_dropped(self, match):
        config = ExecutionConfig(allowed_formats=[MatchFormat.ODI])
        assert filter_matches([match], config) == []

    def test_exclude_avoid_markets(self, match):
        edges = [_edge("l1"), _edge("l3"), _edge("ghost")]
        kept = filter_edges(edges, match, ExecutionConfig(exclude_avoid_markets=True))
        assert [e.market_id for e in kept] == ["l1"]
        assert match.find_line("l3").classification == MarketClassification.VOID_TRAP

    def test_exclude_variance_plays(self, match):
        edges = [_edge("l1", edge_type=EdgeType.VARIANCE_PLAY), _edge("l2")]
        kept = filter_edges(edges, match, ExecutionConfig(exclude_variance_plays=True))
        assert [e.market_id for e in kept] == ["l2"]

    def test_defaults_keep_everything(self, match):
        edges = [_edge("l1"), _edge("l3", edge_type=EdgeType.VARIANCE_PLAY)]
        assert filter_edges(edges, match, ExecutionConfig()) == edges
