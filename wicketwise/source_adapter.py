"""
Base class for market data source adapters.

Each adapter maps one upstream's payloads into the canonical Match and
MarketLine model and tags every line it emits with its own source.
"""

import hashlib
import logging
from abc import ABC, abstractmethod

import requests

from wicketwise.models import Match, MarketSource

# Configure module logger
logger = logging.getLogger(__name__)

# Used by adapters that have no real score feed
SCORE_PLACEHOLDER = "Live"


def stable_id(prefix: str, *parts: str) -> str:
    """
    Derive a deterministic id from upstream fields.

    Used when an upstream record carries no identifier of its own, so the
    same record maps to the same id on every poll.
    """
    digest = hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()[:10]
    return f"{prefix}_{digest}"


class SourceAdapter(ABC):
    """
    Abstract market source.

    Subclasses set `source` and implement fetch_live_matches(). Errors are
    raised, not swallowed: the aggregator isolates each adapter's failure.
    """

    source: MarketSource = MarketSource.MOCK

    def __init__(self, session: requests.Session | None = None):
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "WicketWise/1.0",
        })

    @property
    def name(self) -> str:
        return self.source.value

    @abstractmethod
    def fetch_live_matches(self) -> list[Match]:
        """Return normalized matches from this source."""

    def tag(self, matches: list[Match]) -> list[Match]:
        """Stamp this adapter's source on every line of the given matches."""
        for match in matches:
            for line in match.market_lines:
                line.source = self.source
        return matches
