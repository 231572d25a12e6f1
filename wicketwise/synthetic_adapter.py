"""
Synthetic market generator and fallback dataset.

The seed dataset is two live matches with realistic lines. The adapter
walks overs forward one ball per poll and jitters prices around the seed;
fallback_dataset() returns the seed itself, unjittered.
"""

import logging
import random
import threading
from datetime import datetime, timezone
from typing import Optional

from wicketwise.classifier import classify
from wicketwise.models import (
    MarketLine,
    MarketSource,
    MarketType,
    Match,
    MatchFormat,
    MatchStatus,
)
from wicketwise.source_adapter import SourceAdapter

# Configure module logger
logger = logging.getLogger(__name__)

MIN_SYNTHETIC_LIQUIDITY = 500.0
PRICE_JITTER = 0.05
SYNTHETIC_SPREAD = 0.02

_SEED = [
    {
        "id": "m1", "team_a": "India", "team_b": "Australia",
        "score_a": "145/4", "score_b": "Yet to bat",
        "format": MatchFormat.T20, "venue": "Mumbai", "overs": "16.2",
        "starting_odds_a": 1.45, "starting_odds_b": 2.80,
        "lines": [
            ("ml1_1", MarketType.MATCH_WINNER, "Match Winner", None, 1.65, 1.67, 450000, 12000, 8500),
            ("ml1_2", MarketType.INN_RUNS, "Total Runs (Innings 1)", 245, 1.95, 2.05, 120000, 5000, 4500),
            ("ml1_3", MarketType.WICKET_NEXT, "Next Wicket Over 17.5", None, 15.5, 16.5, 1500, 200, 150),
        ],
    },
    {
        "id": "m2", "team_a": "England", "team_b": "South Africa",
        "score_a": "280/8", "score_b": "150/2",
        "format": MatchFormat.ODI, "venue": "London", "overs": "25.0",
        "starting_odds_a": 1.90, "starting_odds_b": 1.90,
        "lines": [
            ("ml2_1", MarketType.MATCH_WINNER, "Match Winner", None, 3.10, 3.15, 890000, 25000, 30000),
            ("ml2_2", MarketType.INN_RUNS, "Total Runs (Innings 1)", 410, 1.80, 1.85, 340000, 15000, 12000),
        ],
    },
]


def fallback_dataset() -> list[Match]:
    """Fresh copy of the fixed synthetic dataset, tagged MOCK."""
    now = datetime.now(timezone.utc)
    matches = []
    for seed in _SEED:
        lines = [
            MarketLine(
                id=line_id,
                type=market_type,
                label=label,
                classification=classify(market_type, back),
                back_odds=back,
                lay_odds=lay,
                total_matched=float(matched),
                back_liquidity=float(back_liq),
                lay_liquidity=float(lay_liq),
                source=MarketSource.MOCK,
                last_updated=now,
                line_value=float(line_value) if line_value is not None else None,
            )
            for line_id, market_type, label, line_value, back, lay, matched, back_liq, lay_liq in seed["lines"]
        ]
        matches.append(Match(
            id=seed["id"],
            team_a=seed["team_a"],
            team_b=seed["team_b"],
            score_a=seed["score_a"],
            score_b=seed["score_b"],
            status=MatchStatus.LIVE,
            format=seed["format"],
            venue=seed["venue"],
            overs=seed["overs"],
            market_lines=lines,
            starting_odds_a=seed["starting_odds_a"],
            starting_odds_b=seed["starting_odds_b"],
        ))
    return matches


def _overs_to_balls(overs: str) -> int:
    whole, _, part = overs.partition(".")
    return int(whole or 0) * 6 + int(part or 0)


def _balls_to_overs(balls: int) -> str:
    return f"{balls // 6}.{balls % 6}"


class SyntheticAdapter(SourceAdapter):
    """
    Random-walk generator over the seed dataset.

    Args:
        rng: Random source; pass a seeded random.Random for reproducible output
    """

    source = MarketSource.MOCK

    def __init__(self, rng: Optional[random.Random] = None):
        super().__init__()
        self.rng = rng or random.Random()
        self._balls: dict[str, int] = {}
        self._lock = threading.Lock()

    def fetch_live_matches(self) -> list[Match]:
        matches = fallback_dataset()
        with self._lock:
            for match in matches:
                self._advance(match)
        return self.tag(matches)

    def _advance(self, match: Match) -> None:
        if match.id not in self._balls:
            self._balls[match.id] = _overs_to_balls(match.overs)
        else:
            self._balls[match.id] += 1
        match.overs = _balls_to_overs(self._balls[match.id])

        for line in match.market_lines:
            shift = (self.rng.random() - 0.5) * PRICE_JITTER
            seed_back = line.back_odds
            line.back_odds = round(seed_back + shift, 2)
            line.lay_odds = round(seed_back + shift + SYNTHETIC_SPREAD, 2)
            line.total_matched += self.rng.randrange(5000)
            line.back_liquidity = max(
                MIN_SYNTHETIC_LIQUIDITY, line.back_liquidity + (self.rng.random() - 0.5) * 1000
            )
            line.lay_liquidity = max(
                MIN_SYNTHETIC_LIQUIDITY, line.lay_liquidity + (self.rng.random() - 0.5) * 1000
            )
            line.classification = classify(line.type, line.back_odds)
