"""
Ranker module for ordering consensus edges into actionable signals.

This module ranks edges from actionable analyses with a deterministic
scoring formula over confidence, market tier, liquidity and price drift.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from wicketwise.drift import DriftReading, line_drift
from wicketwise.filters import filter_edges
from wicketwise.models import (
    Analysis,
    Edge,
    ExecutionConfig,
    MarketClassification,
    MarketLine,
    Match,
)

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class RankedSignal:
    """
    A ranked trading signal with scoring breakdown.

    Attributes:
        match: Match the edge belongs to
        edge: Consensus edge
        line: Market line the edge pertains to
        score: Overall ranking score (higher is better)
        confidence_score: Component score from edge confidence
        tier_score: Component score from the line's classification
        liquidity_score: Component score from matched volume
        drift_score: Component score from price drift
        drift: Drift reading for the line, if a baseline exists
        explanation: Human-readable explanation of ranking
    """
    match: Match
    edge: Edge
    line: MarketLine
    score: float
    confidence_score: float
    tier_score: float
    liquidity_score: float
    drift_score: float
    drift: Optional[DriftReading]
    explanation: str


# Scoring weights
CONFIDENCE_WEIGHT = 0.45
TIER_WEIGHT = 0.25
LIQUIDITY_WEIGHT = 0.20
DRIFT_WEIGHT = 0.10

TIER_SCORES = {
    MarketClassification.APEX_STRAT: 1.0,
    MarketClassification.TACTICAL_PLAY: 0.7,
    MarketClassification.VOID_TRAP: 0.1,
}


def rank_signals(
    analyses: list[Analysis],
    matches: dict[str, Match],
    config: Optional[ExecutionConfig] = None,
    drift_threshold_pct: Optional[float] = None,
) -> list[RankedSignal]:
    """
    Rank edges from actionable analyses.

    Analyses below the consensus threshold contribute nothing. Edges the
    execution config excludes, or whose line is no longer on the match, are
    skipped.

    Args:
        analyses: Analyses to draw edges from
        matches: Mapping of match id to current Match
        config: Execution config; defaults apply if None
        drift_threshold_pct: Drift significance threshold

    Returns:
        RankedSignal list sorted by score (descending)
    """
    config = config or ExecutionConfig()
    signals: list[RankedSignal] = []

    for analysis in analyses:
        if not analysis.is_actionable:
            logger.debug(f"Skipping analysis for {analysis.match_id}: consensus {analysis.consensus_level} too low")
            continue
        if analysis.consensus_level < config.min_consensus_level:
            logger.debug(f"Skipping analysis for {analysis.match_id}: below configured minimum consensus")
            continue

        match = matches.get(analysis.match_id)
        if match is None:
            logger.warning(f"Match {analysis.match_id} not found for analysis")
            continue

        for edge in filter_edges(list(analysis.edges), match, config):
            line = match.find_line(edge.market_id)
            if line is None:
                logger.debug(f"Skipping edge on unknown market {edge.market_id}")
                continue

            reading = line_drift(line, drift_threshold_pct)
            confidence_score = max(0.0, min(1.0, edge.confidence / 100.0))
            tier_score = TIER_SCORES[line.classification]
            liquidity_score = _calculate_liquidity_score(line.total_matched)
            drift_score = _calculate_drift_score(reading)

            composite_score = (
                confidence_score * CONFIDENCE_WEIGHT +
                tier_score * TIER_WEIGHT +
                liquidity_score * LIQUIDITY_WEIGHT +
                drift_score * DRIFT_WEIGHT
            )

            signals.append(RankedSignal(
                match=match,
                edge=edge,
                line=line,
                score=composite_score,
                confidence_score=confidence_score,
                tier_score=tier_score,
                liquidity_score=liquidity_score,
                drift_score=drift_score,
                drift=reading,
                explanation=_generate_explanation(edge, line, reading, composite_score),
            ))

    signals.sort(key=lambda s: s.score, reverse=True)

    logger.info(f"Ranked {len(signals)} signals")
    return signals


def _calculate_liquidity_score(total_matched: float) -> float:
    """
    Logarithmic score from matched volume: 1k = 0.0, 100k = 0.5, 10M = 1.0.
    """
    if total_matched <= 0:
        return 0.0
    log_score = math.log10(total_matched / 1000.0) / 4.0
    return max(0.0, min(1.0, log_score))


def _calculate_drift_score(reading: Optional[DriftReading]) -> float:
    # Unknown baseline is neutral; significant movement scores highest
    if reading is None:
        return 0.5
    if reading.is_significant:
        return 1.0
    return min(1.0, reading.percent / 15.0) * 0.8


def _generate_explanation(
    edge: Edge,
    line: MarketLine,
    reading: Optional[DriftReading],
    composite_score: float,
) -> str:
    drift_str = f"{reading.direction} {reading.percent:.1f}%" if reading else "n/a"
    rules = ", ".join(edge.triggered_rules) or "none"
    return (
        f"Score: {composite_score:.3f} | "
        f"{edge.edge_type.value} on {line.label} | "
        f"Confidence: {edge.confidence:.0f}% | "
        f"Tier: {line.classification.value} | "
        f"Matched: {line.total_matched:,.0f} | "
        f"Drift: {drift_str} | "
        f"Rules: {rules}"
    )
