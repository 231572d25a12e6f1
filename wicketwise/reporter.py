"""
Reporter module for readable console output.

Formats the live match board, ranked signals and the performance review
in a plain-text layout suitable for a terminal or a log file.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from wicketwise.drift import line_drift
from wicketwise.ledger import PerformanceSummary
from wicketwise.models import Match, Trade
from wicketwise.ranker import RankedSignal
from wicketwise.utils import format_currency, format_percentage

# Configure module logger
logger = logging.getLogger(__name__)

RULE = "=" * 80
SUBRULE = "-" * 80


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_match_board(matches: list[Match], drift_threshold_pct: Optional[float] = None) -> str:
    """
    Format every match with its lines, classification and drift.

    Args:
        matches: Matches to display
        drift_threshold_pct: Threshold used to flag significant drift

    Returns:
        Board text
    """
    sections = [RULE, f"  LIVE MARKETS - {_now()}", RULE]
    if not matches:
        sections.append("No live matches.")
        return "\n".join(sections)

    for match in matches:
        sections.append(
            f"[{match.id}] {match.name} ({match.format.value}, {match.venue}) - {match.status.value}"
        )
        sections.append(f"    {match.team_a} {match.score_a} | {match.team_b} {match.score_b} | Overs {match.overs}")
        for line in match.market_lines:
            reading = line_drift(line, drift_threshold_pct)
            drift_str = ""
            if reading:
                flag = " !" if reading.is_significant else ""
                drift_str = f"  drift {reading.direction} {format_percentage(reading.percent)}{flag}"
            sections.append(
                f"      {line.label:<28} {line.classification.value:<14} "
                f"back {line.back_odds:>6.2f}  lay {line.lay_odds:>6.2f}  "
                f"matched {line.total_matched:>12,.0f}{drift_str}"
            )
        sections.append("")

    return "\n".join(sections).rstrip()


def format_signals(signals: list[RankedSignal], max_signals: int = 10) -> str:
    """
    Format ranked signals with their scoring breakdown.

    Args:
        signals: Ranked signals, pre-sorted
        max_signals: Maximum number of signals to include

    Returns:
        Report text
    """
    signals = signals[:max_signals]
    sections = [RULE, "  CONSENSUS SIGNALS", RULE, f"Generated: {_now()}", f"Signals: {len(signals)}", SUBRULE]

    if not signals:
        sections.append("No actionable signals.")
        return "\n".join(sections)

    for rank, signal in enumerate(signals, 1):
        edge = signal.edge
        sections.extend([
            f"[{rank}] {signal.match.name} / {signal.line.label}",
            f"    {edge.edge_type.value} | confidence {format_percentage(edge.confidence, 0)} | "
            f"back {signal.line.back_odds:.2f} / lay {signal.line.lay_odds:.2f}",
            f"    SCORE: {signal.score:.3f} (Conf: {signal.confidence_score:.2f} | "
            f"Tier: {signal.tier_score:.2f} | Liq: {signal.liquidity_score:.2f} | "
            f"Drift: {signal.drift_score:.2f})",
            f"    {edge.observation}",
        ])
        if edge.experts_concurred:
            sections.append(f"    Experts: {', '.join(edge.experts_concurred)}")
        if edge.triggered_rules:
            sections.append(f"    Rules: {', '.join(edge.triggered_rules)}")
        sections.append("")

    return "\n".join(sections).rstrip()


def format_performance(summary: PerformanceSummary, trades: list[Trade], max_trades: int = 10) -> str:
    """
    Format the performance review and the most recent trades.

    Args:
        summary: Aggregate figures from the ledger
        trades: Trades, newest first
        max_trades: Maximum number of trades listed

    Returns:
        Report text
    """
    sections = [
        RULE,
        "  PERFORMANCE REVIEW",
        RULE,
        f"Settled trades: {summary.settled_count} ({summary.win_count} won)",
        f"Win rate: {format_percentage(summary.win_rate)}",
        f"Net P/L: {format_currency(summary.total_profit, 2)}",
        f"ROI: {format_percentage(summary.roi)}",
        f"Total staked: ${summary.total_staked:,.2f} "
        f"(won ${summary.staked_won:,.2f} / lost ${summary.staked_lost:,.2f})",
        f"Average stake: ${summary.average_stake:,.2f} | Max stake: ${summary.max_stake:,.2f}",
        SUBRULE,
    ]

    if not trades:
        sections.append("No trades recorded.")
        return "\n".join(sections)

    for trade in trades[:max_trades]:
        profit = trade.profit
        pnl = format_currency(profit, 2) if profit is not None else "open"
        sections.append(
            f"{trade.timestamp:%Y-%m-%d %H:%M} {trade.id} {trade.side.value:<4} "
            f"{trade.match_name} / {trade.market_label} @ {trade.odds:.2f} x {trade.stake:,.0f} "
            f"[{trade.status.value}] {pnl}"
        )

    return "\n".join(sections)
