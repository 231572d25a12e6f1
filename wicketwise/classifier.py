"""
Market classifier for assigning a risk tier to a market line.

This module performs no I/O and holds no state. Given a market type and its
current back price it returns one of APEX_STRAT, TACTICAL_PLAY or VOID_TRAP.
"""

import logging
from dataclasses import dataclass
from typing import Union

from wicketwise.config import Config
from wicketwise.models import MarketClassification, MarketType

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierBand:
    """
    Sane price band for secondary markets.

    Both bounds are inclusive: a price equal to a bound is inside the band.
    """
    min_price: float
    max_price: float

    def contains(self, price: float) -> bool:
        return self.min_price <= price <= self.max_price


BANDS: dict[str, ClassifierBand] = {
    "standard": ClassifierBand(min_price=1.02, max_price=12.0),
    "lenient": ClassifierBand(min_price=1.01, max_price=15.0),
}

# Secondary structural markets that are tradeable inside the band
TACTICAL_TYPES: frozenset[MarketType] = frozenset(
    {MarketType.INN_RUNS, MarketType.SESSION_RUNS, MarketType.PP_RUNS}
    | {t for t in MarketType if t.value.startswith("OVER_RUNS_")}
)


def band_for(strictness: str) -> ClassifierBand:
    """Return the band for a strictness name, falling back to 'standard'."""
    band = BANDS.get(strictness)
    if band is None:
        logger.warning(f"Unknown classifier strictness '{strictness}', using 'standard'")
        return BANDS["standard"]
    return band


def classify(
    market_type: Union[MarketType, str],
    current_back_price: float,
    band: ClassifierBand | None = None,
) -> MarketClassification:
    """
    Classify a market line.

    Rules, first match wins:
    1. MATCH_WINNER is always APEX_STRAT.
    2. A price outside the band (or not a finite number) is VOID_TRAP.
    3. A tactical market type is TACTICAL_PLAY.
    4. Anything else, including unknown types, is VOID_TRAP.

    Args:
        market_type: MarketType member or its raw string value
        current_back_price: Current best back price (decimal odds)
        band: Price band; defaults to the configured strictness

    Returns:
        MarketClassification
    """
    if band is None:
        band = band_for(Config.CLASSIFIER_STRICTNESS)

    if isinstance(market_type, MarketType):
        kind = market_type
    else:
        try:
            kind = MarketType(str(market_type))
        except ValueError:
            kind = None

    if kind == MarketType.MATCH_WINNER:
        return MarketClassification.APEX_STRAT

    try:
        price = float(current_back_price)
    except (TypeError, ValueError):
        return MarketClassification.VOID_TRAP

    # NaN fails both comparisons in contains()
    if not band.contains(price):
        return MarketClassification.VOID_TRAP

    if kind in TACTICAL_TYPES:
        return MarketClassification.TACTICAL_PLAY

    return MarketClassification.VOID_TRAP
