"""
Execution-config filters for matches and edges.

Pure functions with no external calls: they apply the user's persisted
preferences (allowed formats, strategy-only view, excluded edge kinds)
to the aggregated matches and to consensus edges.
"""

import logging
from dataclasses import replace

from wicketwise.models import (
    Edge,
    EdgeType,
    ExecutionConfig,
    MarketClassification,
    Match,
)

# Configure module logger
logger = logging.getLogger(__name__)


def filter_matches(matches: list[Match], config: ExecutionConfig) -> list[Match]:
    """
    Keep matches in an allowed format; in strategy-only view, hide VOID_TRAP lines.

    Matches are copied, never mutated, so the aggregator's objects keep all
    of their lines.
    """
    allowed = set(config.allowed_formats)
    kept = []
    for match in matches:
        if match.format not in allowed:
            logger.debug(f"Match {match.id} filtered: format {match.format.value} not allowed")
            continue
        if config.strategy_only_view:
            lines = [
                line for line in match.market_lines
                if line.classification != MarketClassification.VOID_TRAP
            ]
            match = replace(match, market_lines=lines)
        kept.append(match)
    return kept


def filter_edges(edges: list[Edge], match: Match, config: ExecutionConfig) -> list[Edge]:
    """
    Drop edges the user excluded.

    With exclude_avoid_markets, edges on VOID_TRAP lines (or on lines the
    match does not carry) are dropped. With exclude_variance_plays,
    VARIANCE_PLAY edges are dropped.
    """
    kept = []
    for edge in edges:
        if config.exclude_variance_plays and edge.edge_type == EdgeType.VARIANCE_PLAY:
            continue
        if config.exclude_avoid_markets:
            line = match.find_line(edge.market_id)
            if line is None or line.classification == MarketClassification.VOID_TRAP:
                continue
        kept.append(edge)

    if len(kept) != len(edges):
        logger.debug(f"Filtered {len(edges) - len(kept)} edge(s) on match {match.id}")
    return kept
