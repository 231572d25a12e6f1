"""
Drift and variance analysis for market lines.

drift() is a pure comparison of a current price against its baseline.
BaselineTracker records the first observed price of every line so the
baseline stays fixed for the lifetime of a session.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from wicketwise.config import Config
from wicketwise.models import Match, MarketLine

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriftReading:
    """
    Attributes:
        percent: Absolute deviation from baseline, as a percentage
        is_positive: True when the current price is above the baseline
        is_significant: True when percent exceeds the threshold
    """
    percent: float
    is_positive: bool
    is_significant: bool

    @property
    def direction(self) -> str:
        return "UP" if self.is_positive else "DOWN"


def drift(
    current_price: float,
    initial_price: Optional[float],
    threshold_pct: Optional[float] = None,
) -> Optional[DriftReading]:
    """
    Compare a current price with its baseline.

    Args:
        current_price: Current back price
        initial_price: Baseline price, or None if none was recorded yet
        threshold_pct: Significance threshold; defaults to Config.DRIFT_THRESHOLD_PCT

    Returns:
        DriftReading, or None when there is no usable baseline
    """
    if initial_price is None or initial_price <= 0:
        return None

    if threshold_pct is None:
        threshold_pct = Config.DRIFT_THRESHOLD_PCT

    change_pct = abs(current_price - initial_price) / initial_price * 100
    return DriftReading(
        percent=round(change_pct, 2),
        is_positive=current_price > initial_price,
        is_significant=change_pct > threshold_pct,
    )


def line_drift(line: MarketLine, threshold_pct: Optional[float] = None) -> Optional[DriftReading]:
    return drift(line.back_odds, line.initial_odds, threshold_pct)


class BaselineTracker:
    """
    Session store of first-observed prices keyed by (match id, line id).

    A line that arrives with its own initial_odds keeps it; otherwise the
    first back price seen becomes its baseline. Recorded baselines are never
    overwritten.
    """

    def __init__(self):
        self._baselines: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def apply(self, matches: list[Match]) -> list[Match]:
        """Stamp initial_odds on every line of the given matches in place."""
        with self._lock:
            for match in matches:
                for line in match.market_lines:
                    key = (match.id, line.id)
                    baseline = self._baselines.get(key)
                    if baseline is None:
                        baseline = line.initial_odds if line.initial_odds is not None else line.back_odds
                        self._baselines[key] = baseline
                        logger.debug(f"Baseline for {match.id}/{line.id} recorded at {baseline}")
                    line.initial_odds = baseline
        return matches

    def baseline(self, match_id: str, line_id: str) -> Optional[float]:
        with self._lock:
            return self._baselines.get((match_id, line_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._baselines)
