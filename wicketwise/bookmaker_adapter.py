"""
Adapter for the scraped Jeebet bookmaker session.

The bookmaker has no documented API. The adapter authenticates with a
username and a session cookie pasted by the user, and treats the bridge as
an opaque source whose successful calls return matches already in the
canonical shape. Lines are reclassified and tagged on the way in.
"""

import logging
from typing import Any, Callable, Optional

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
from wicketwise.models import BridgeStatus, MarketLine, MarketSource, Match
from wicketwise.source_adapter import SCORE_PLACEHOLDER, SourceAdapter, stable_id

# Configure module logger
logger = logging.getLogger(__name__)

SESSION_COOKIE_KEY = "sessionid"
MIN_TOKEN_LENGTH = 5


def sanitize_session_token(raw: Optional[str], key: str = SESSION_COOKIE_KEY) -> str:
    """
    Reduce a pasted credential string to the bare session token.

    Users often paste a whole cookie header such as
    "csrftoken=abc; sessionid=XYZ; Path=/; HttpOnly". When the known key is
    present, the value after "key=" up to the next ";" is returned.
    Otherwise the trimmed input is returned unchanged.

    Args:
        raw: Raw pasted string
        key: Cookie name holding the session token

    Returns:
        Bare token string (possibly empty)
    """
    clean = (raw or "").strip()
    marker = f"{key.lower()}="
    idx = clean.lower().find(marker)
    if idx != -1:
        clean = clean[idx + len(marker):].split(";")[0].strip()
    return clean


class BookmakerAdapter(SourceAdapter):
    """
    Jeebet session adapter.

    Args:
        username: Account username
        session_cookie: Raw session cookie string; sanitized on construction
        base_url: Bridge base URL; defaults to Config.JEEBET_API_URL
        timeout: Request timeout in seconds
        session: Optional requests.Session to reuse
    """

    source = MarketSource.JEEBET

    def __init__(
        self,
        username: Optional[str] = None,
        session_cookie: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(session)
        self.username = (username if username is not None else Config.JEEBET_USERNAME) or ""
        self.session_token = sanitize_session_token(
            session_cookie if session_cookie is not None else Config.JEEBET_SESSION_COOKIE
        )
        self.base_url = (base_url or Config.JEEBET_API_URL).rstrip("/")
        self.timeout = timeout or Config.API_TIMEOUT
        self.bridge_status = BridgeStatus.OFFLINE

    def validate_credentials(self) -> list[str]:
        """Return a list of problems with the supplied credentials."""
        problems = []
        if not self.username.strip():
            problems.append("username is required")
        if len(self.session_token) < MIN_TOKEN_LENGTH:
            problems.append("session cookie is missing or too short")
        return problems

    def handshake(self, on_log: Optional[Callable[[str], None]] = None) -> BridgeStatus:
        """
        Verify the credentials against the bridge and report its status.

        Args:
            on_log: Optional callback receiving progress lines

        Returns:
            Resulting BridgeStatus (also stored on the adapter)
        """
        def emit(message: str) -> None:
            logger.info(message)
            if on_log:
                on_log(message)

        problems = self.validate_credentials()
        if problems:
            emit(f"[ABORT] {'; '.join(problems)}")
            self.bridge_status = BridgeStatus.OFFLINE
            return self.bridge_status

        emit("[INIT] Locating bookmaker bridge...")
        self.bridge_status = BridgeStatus.VPN_VERIFYING
        try:
            self._get("status")
        except CredentialRejectedError:
            emit("[AUTH] Session rejected, re-authentication required")
            self.bridge_status = BridgeStatus.AUTH_PENDING
            return self.bridge_status
        except (UpstreamUnavailableError, QuotaExhaustedError) as e:
            emit(f"[ERROR] Bridge unreachable: {e}")
            self.bridge_status = BridgeStatus.ERROR
            return self.bridge_status

        emit("[SUCCESS] Bridge ready, live liquidity synced")
        self.bridge_status = BridgeStatus.SYNCED
        return self.bridge_status

    def fetch_live_matches(self) -> list[Match]:
        """
        Fetch live matches from the bookmaker bridge.

        Raises:
            InvalidInputError: If credentials are missing (no request is made)
            CredentialRejectedError: On a 401/403 response
            QuotaExhaustedError: On a 429 response
            UpstreamUnavailableError: On any other network or HTTP failure
        """
        problems = self.validate_credentials()
        if problems:
            raise InvalidInputError(f"Jeebet credentials invalid: {'; '.join(problems)}")

        data = self._get("markets")
        if isinstance(data, dict):
            data = data.get("matches", [])
        if not isinstance(data, list):
            logger.warning(f"Expected list of matches from Jeebet, got {type(data)}")
            return []

        matches = []
        for idx, match_data in enumerate(data):
            match = self._parse_match(match_data)
            if match:
                matches.append(match)
            else:
                logger.warning(f"Skipped unparseable Jeebet match at index {idx}")

        self.bridge_status = BridgeStatus.RECON_ACTIVE
        logger.info(f"Normalized {len(matches)} Jeebet matches")
        return self.tag(matches)

    def _get(self, path: str) -> Any:
        url = f"{self.base_url}/{path}"
        headers = {
            "Cookie": f"{SESSION_COOKIE_KEY}={self.session_token}",
            "X-Username": self.username,
        }
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except Timeout as e:
            raise UpstreamUnavailableError(f"Jeebet request timed out after {self.timeout}s") from e
        except ConnectionError as e:
            raise UpstreamUnavailableError(f"Connection error calling Jeebet: {e}") from e
        except RequestException as e:
            raise UpstreamUnavailableError(f"Jeebet request failed: {e}") from e

        if response.status_code in (401, 403):
            raise CredentialRejectedError(f"Jeebet rejected the session ({response.status_code})")
        if response.status_code == 429:
            raise QuotaExhaustedError("Jeebet rate limit reached")
        if not response.ok:
            raise UpstreamUnavailableError(f"Jeebet error {response.status_code}: {response.reason}")

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Jeebet returned invalid JSON") from e

    def _parse_match(self, data: Any) -> Optional[Match]:
        if not isinstance(data, dict):
            return None

        lines: list[MarketLine] = []
        for raw_line in data.get("marketLines") or []:
            try:
                line = MarketLine.from_dict({**raw_line, "source": self.source.value})
            except (KeyError, ValueError, TypeError) as e:
                logger.debug(f"Skipping Jeebet line {raw_line!r}: {e}")
                continue
            line.classification = classify(line.type, line.back_odds)
            lines.append(line)

        payload = {**data, "marketLines": []}
        if not payload.get("id"):
            payload["id"] = stable_id(
                "jb", str(data.get("teamA", "")), str(data.get("teamB", "")), str(data.get("venue", ""))
            )
        if not payload.get("scoreA"):
            payload["scoreA"] = SCORE_PLACEHOLDER
        payload["isLiveRealtime"] = True

        try:
            match = Match.from_dict(payload)
        except (KeyError, ValueError, TypeError) as e:
            logger.debug(f"Jeebet match parse error: {e}", exc_info=True)
            return None

        match.market_lines = lines
        return match
