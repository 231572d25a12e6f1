"""
Exchange adapter for live cricket markets on the Betfair betting API.

This module handles the retrieval and normalization of in-play cricket
events, their market catalogues and order books. It performs no business
logic beyond classification - only data fetching and transformation into
the canonical Match and MarketLine model.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from wicketwise.classifier import classify
from wicketwise.config import Config
from wicketwise.errors import (
    CredentialRejectedError,
    InvalidInputError,
    QuotaExhaustedError,
    UpstreamUnavailableError,
)
from wicketwise.models import (
    MarketLine,
    MarketSource,
    MarketType,
    Match,
    MatchFormat,
    MatchStatus,
)
from wicketwise.source_adapter import SCORE_PLACEHOLDER, SourceAdapter, stable_id

# Configure module logger
logger = logging.getLogger(__name__)

CRICKET_EVENT_TYPE_ID = "4"
MARKET_TYPE_CODES = ["MATCH_ODDS", "INNINGS_RUNS"]

# Betfair market type code -> canonical market type
_TYPE_CODES: dict[str, MarketType] = {
    "MATCH_ODDS": MarketType.MATCH_WINNER,
    "INNINGS_RUNS": MarketType.INN_RUNS,
    "1ST_INNINGS_RUNS": MarketType.INN_RUNS,
    "SESSION_RUNS": MarketType.SESSION_RUNS,
    "POWERPLAY_RUNS": MarketType.PP_RUNS,
}

# Prices used when the order book has no offer on a side
DEFAULT_BACK_PRICE = 1.01
DEFAULT_LAY_PRICE = 1.02

_RUNS_LINE = re.compile(r"(\d+(?:\.\d+)?)\s*runs", re.IGNORECASE)


class ExchangeAdapter(SourceAdapter):
    """
    Betfair REST adapter.

    Args:
        app_key: Application key (X-Application header)
        session_token: Session token (X-Authentication header)
        base_url: API base path; defaults to Config.BETFAIR_API_URL
        forwarding_prefix: Optional URL prefix the request is routed through
        timeout: Request timeout in seconds
        session: Optional requests.Session to reuse
    """

    source = MarketSource.BETFAIR

    def __init__(
        self,
        app_key: Optional[str] = None,
        session_token: Optional[str] = None,
        base_url: Optional[str] = None,
        forwarding_prefix: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(session)
        self.app_key = (app_key if app_key is not None else Config.BETFAIR_APP_KEY) or ""
        self.session_token = (
            session_token if session_token is not None else Config.BETFAIR_SESSION_TOKEN
        ) or ""
        self.base_url = (base_url or Config.BETFAIR_API_URL).rstrip("/")
        self.forwarding_prefix = (
            forwarding_prefix if forwarding_prefix is not None else Config.FORWARDING_PREFIX
        ) or ""
        self.timeout = timeout or Config.API_TIMEOUT

    @property
    def endpoint(self) -> str:
        """Effective base URL, including the forwarding prefix if set."""
        return f"{self.forwarding_prefix}{self.base_url}"

    def fetch_live_matches(self) -> list[Match]:
        """
        Fetch in-play cricket matches with their market lines.

        Returns:
            List of Match objects; empty if nothing is in play.

        Raises:
            InvalidInputError: If credentials are missing (no request is made)
            CredentialRejectedError: On a 403 response
            QuotaExhaustedError: On a 429 response
            UpstreamUnavailableError: On any other network or HTTP failure
        """
        self._require_credentials()

        events = self.list_live_cricket_events()
        if not events:
            logger.info("No in-play cricket events on the exchange")
            return []

        event_ids = [_event_of(e)["id"] for e in events if _event_of(e).get("id")]
        catalogues = self.list_market_catalogue(event_ids) if event_ids else []
        market_ids = [c["marketId"] for c in catalogues if c.get("marketId")]
        books = self.list_market_books(market_ids) if market_ids else []

        matches = self._normalize(events, catalogues, books)
        logger.info(f"Normalized {len(matches)} exchange matches")
        return self.tag(matches)

    # --------------- API operations --------------- #

    def list_live_cricket_events(self) -> list[dict]:
        data = self._request("listEvents", {
            "filter": {"eventTypeIds": [CRICKET_EVENT_TYPE_ID], "inPlayOnly": True},
        })
        return data if isinstance(data, list) else []

    def list_market_catalogue(self, event_ids: list[str]) -> list[dict]:
        data = self._request("listMarketCatalogue", {
            "filter": {"eventIds": event_ids, "marketTypeCodes": MARKET_TYPE_CODES},
            "maxResults": 50,
            "marketProjection": ["EVENT", "MARKET_START_TIME", "RUNNER_METADATA", "MARKET_DESCRIPTION"],
        })
        return data if isinstance(data, list) else []

    def list_market_books(self, market_ids: list[str]) -> list[dict]:
        data = self._request("listMarketBook", {
            "marketIds": market_ids,
            "priceProjection": {"priceData": ["EX_BEST_OFFERS", "EX_TRADED"], "virtualise": True},
        })
        return data if isinstance(data, list) else []

    def _require_credentials(self) -> None:
        missing = []
        if not self.app_key.strip():
            missing.append("app key")
        if not self.session_token.strip():
            missing.append("session token")
        if missing:
            raise InvalidInputError(f"Betfair credentials missing: {', '.join(missing)}")

    def _request(self, method: str, params: dict) -> Any:
        url = f"{self.endpoint}/{method}/"
        headers = {
            "X-Application": self.app_key,
            "X-Authentication": self.session_token,
            "Content-Type": "application/json",
        }

        try:
            logger.debug(f"Betfair {method} -> {url}")
            response = self.session.post(url, json=params, headers=headers, timeout=self.timeout)
        except Timeout as e:
            raise UpstreamUnavailableError(f"Betfair {method} timed out after {self.timeout}s") from e
        except ConnectionError as e:
            raise UpstreamUnavailableError(f"Connection error calling Betfair {method}: {e}") from e
        except RequestException as e:
            raise UpstreamUnavailableError(f"Betfair {method} request failed: {e}") from e

        if response.status_code == 403:
            raise CredentialRejectedError(
                "Betfair rejected the credentials (403): check app key, session token or region"
            )
        if response.status_code == 429:
            raise QuotaExhaustedError("Betfair rate limit reached")
        if not response.ok:
            logger.error(f"Betfair {method} response body: {response.text[:500]}")
            raise UpstreamUnavailableError(f"Betfair API error {response.status_code}: {response.reason}")

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError(f"Betfair {method} returned invalid JSON") from e

    # --------------- Normalization --------------- #

    def _normalize(self, events: list[dict], catalogues: list[dict], books: list[dict]) -> list[Match]:
        books_by_id = {b.get("marketId"): b for b in books}
        matches: list[Match] = []

        for idx, event_data in enumerate(events):
            try:
                event = _event_of(event_data)
                event_id = event.get("id")
                if not event_id:
                    logger.warning(f"Skipping exchange event at index {idx} without an id")
                    continue
                event_catalogues = [
                    c for c in catalogues
                    if (c.get("event") or {}).get("id") == event_id
                ]
                lines = []
                for cat in event_catalogues:
                    line = self._parse_line(cat, books_by_id.get(cat.get("marketId")))
                    if line:
                        lines.append(line)
                matches.append(self._parse_match(event, lines))
            except Exception as e:
                logger.warning(f"Failed to parse exchange event at index {idx}: {e}")
                logger.debug(f"Event data: {event_data}", exc_info=True)
                continue

        return matches

    def _parse_match(self, event: dict, lines: list[MarketLine]) -> Match:
        name = str(event.get("name") or "")
        teams = [t.strip() for t in name.split(" v ")]
        team_a = teams[0] if teams and teams[0] else "Team A"
        team_b = teams[1] if len(teams) > 1 and teams[1] else "Team B"
        event_id = event.get("id") or stable_id("bf_evt", name, str(event.get("openDate") or ""))

        return Match(
            id=str(event_id),
            team_a=team_a,
            team_b=team_b,
            score_a=SCORE_PLACEHOLDER,
            score_b="",
            status=MatchStatus.LIVE,
            format=_infer_format(name),
            venue=event.get("venue") or "Unknown Venue",
            overs="0.0",
            market_lines=lines,
            is_live_realtime=True,
        )

    def _parse_line(self, catalogue: dict, book: Optional[dict]) -> Optional[MarketLine]:
        if not book:
            logger.debug(f"No order book for market {catalogue.get('marketId')}, skipping")
            return None

        runners = book.get("runners") or []
        offers = (runners[0].get("ex") or {}) if runners else {}
        backs = offers.get("availableToBack") or []
        lays = offers.get("availableToLay") or []

        back_price = float(backs[0].get("price") or DEFAULT_BACK_PRICE) if backs else DEFAULT_BACK_PRICE
        lay_price = float(lays[0].get("price") or DEFAULT_LAY_PRICE) if lays else DEFAULT_LAY_PRICE

        market_name = str(catalogue.get("marketName") or "")
        type_code = (catalogue.get("description") or {}).get("marketType")
        market_type = _infer_market_type(type_code, market_name)
        market_id = catalogue.get("marketId") or stable_id("bf_mkt", market_name)

        line_value = None
        if market_type != MarketType.MATCH_WINNER:
            found = _RUNS_LINE.search(market_name)
            if found:
                line_value = float(found.group(1))

        return MarketLine(
            id=str(market_id),
            type=market_type,
            label=market_name or market_type.value,
            classification=classify(market_type, back_price),
            back_odds=back_price,
            lay_odds=lay_price,
            total_matched=float(book.get("totalMatched") or 0.0),
            back_liquidity=float(backs[0].get("size") or 0.0) if backs else 0.0,
            lay_liquidity=float(lays[0].get("size") or 0.0) if lays else 0.0,
            source=self.source,
            last_updated=datetime.now(timezone.utc),
            line_value=line_value,
        )


def _event_of(entry: Any) -> dict:
    event = entry.get("event") if isinstance(entry, dict) else None
    return event if isinstance(event, dict) else {}


def _infer_market_type(type_code: Optional[str], market_name: str) -> MarketType:
    if type_code and type_code in _TYPE_CODES:
        return _TYPE_CODES[type_code]
    if "match odds" in market_name.lower():
        return MarketType.MATCH_WINNER
    return MarketType.INN_RUNS


def _infer_format(event_name: str) -> MatchFormat:
    lowered = event_name.lower()
    if "odi" in lowered or "one day" in lowered:
        return MatchFormat.ODI
    if "test" in lowered:
        return MatchFormat.TEST
    return MatchFormat.T20
