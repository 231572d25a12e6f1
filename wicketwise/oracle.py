"""
Reasoning oracle interface and its HTTP implementation.

The consensus engine treats the language models as a stateless RPC with two
call shapes:

- summarize(prompt): web-grounded free text plus citations (Perplexity)
- structure(prompt, schema): schema-constrained JSON (Claude, forced tool use)

Both calls raise from the taxonomy in wicketwise.errors; neither retries.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urlparse

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from wicketwise.config import Config
from wicketwise.errors import (
    CredentialRejectedError,
    MalformedResponseError,
    QuotaExhaustedError,
    UpstreamUnavailableError,
)
from wicketwise.models import Citation, Pulse
from wicketwise.utils import safe_float, safe_json_loads

# Configure module logger
logger = logging.getLogger(__name__)

STRUCTURE_TOOL_NAME = "record_structural_analysis"


class ReasoningOracle(ABC):
    """External reasoning service used by the consensus engine."""

    @abstractmethod
    def summarize(self, prompt: str) -> Pulse:
        """Return a grounded free-text summary and its citations."""

    @abstractmethod
    def structure(self, prompt: str, schema: dict[str, Any], system: str = "") -> dict[str, Any]:
        """
        Return a JSON object conforming to schema.

        Raises:
            MalformedResponseError: If no JSON object can be recovered
        """


class HttpReasoningOracle(ReasoningOracle):
    """
    Perplexity for grounded summaries, Claude for structured judgment.

    Missing API keys do not fail construction; the affected call raises
    UpstreamUnavailableError instead.
    """

    def __init__(
        self,
        perplexity_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.perplexity_api_key = perplexity_api_key if perplexity_api_key is not None else Config.PERPLEXITY_API_KEY
        self.anthropic_api_key = anthropic_api_key if anthropic_api_key is not None else Config.ANTHROPIC_API_KEY
        self.session = session or requests.Session()
        if not self.perplexity_api_key:
            logger.warning("PERPLEXITY_API_KEY not configured, market pulse unavailable")
        if not self.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY not configured, structural analysis unavailable")

    def summarize(self, prompt: str) -> Pulse:
        if not self.perplexity_api_key:
            raise UpstreamUnavailableError("pulse service unavailable: no API key")

        headers = {
            "Authorization": f"Bearer {self.perplexity_api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": Config.PERPLEXITY_MODEL,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": Config.PERPLEXITY_TEMPERATURE,
            "max_tokens": Config.PERPLEXITY_MAX_TOKENS,
        }

        logger.debug(f"Calling Perplexity API with model {Config.PERPLEXITY_MODEL}")
        data = self._post("Perplexity", Config.PERPLEXITY_API_URL, payload, headers, Config.RESEARCH_TIMEOUT)

        choices = data.get("choices") or []
        text = ""
        if choices:
            text = (choices[0].get("message") or {}).get("content") or ""
        if not text:
            logger.warning("Unexpected Perplexity API response structure")
            logger.debug(f"Response data: {json.dumps(data, indent=2)[:500]}")

        return Pulse(text=text.strip(), citations=tuple(_parse_citations(data)))

    def structure(self, prompt: str, schema: dict[str, Any], system: str = "") -> dict[str, Any]:
        if not self.anthropic_api_key:
            raise UpstreamUnavailableError("structural service unavailable: no API key")

        headers = {
            "x-api-key": self.anthropic_api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }
        payload = {
            "model": Config.CLAUDE_MODEL,
            "max_tokens": Config.CLAUDE_MAX_TOKENS,
            "temperature": Config.CLAUDE_TEMPERATURE,
            "messages": [{"role": "user", "content": prompt}],
            "tools": [{
                "name": STRUCTURE_TOOL_NAME,
                "description": "Record the structured consensus analysis.",
                "input_schema": schema,
            }],
            "tool_choice": {"type": "tool", "name": STRUCTURE_TOOL_NAME},
        }
        if system:
            payload["system"] = system

        logger.debug(f"Calling Claude API with model {Config.CLAUDE_MODEL}")
        data = self._post("Claude", Config.ANTHROPIC_API_URL, payload, headers, Config.API_TIMEOUT)

        for block in data.get("content") or []:
            if block.get("type") == "tool_use" and isinstance(block.get("input"), dict):
                return block["input"]

        # Fall back to JSON embedded in a text block
        for block in data.get("content") or []:
            if block.get("type") == "text":
                parsed = safe_json_loads(block.get("text", ""))
                if isinstance(parsed, dict):
                    return parsed

        logger.debug(f"Response data: {json.dumps(data, indent=2)[:500]}")
        raise MalformedResponseError("Claude response carried no structured output")

    def _post(
        self,
        service: str,
        url: str,
        payload: dict,
        headers: dict,
        timeout: float,
    ) -> dict:
        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=timeout)
        except Timeout as e:
            raise UpstreamUnavailableError(f"{service} API request timed out after {timeout}s") from e
        except ConnectionError as e:
            raise UpstreamUnavailableError(f"Connection error calling {service} API: {e}") from e
        except RequestException as e:
            raise UpstreamUnavailableError(f"{service} API request failed: {e}") from e

        if response.status_code == 429:
            retry_after = safe_float(response.headers.get("retry-after"), 0.0) or None
            logger.warning(f"{service} API rate limited (retry after {retry_after})")
            raise QuotaExhaustedError(f"{service} quota exhausted", retry_after=retry_after)
        if response.status_code in (401, 403):
            raise CredentialRejectedError(f"{service} rejected the API key ({response.status_code})")
        if not response.ok:
            logger.error(f"{service} response status: {response.status_code}")
            logger.error(f"Response text: {response.text[:500]}")
            raise UpstreamUnavailableError(f"{service} API error {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{service} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{service} response is not a JSON object")
        return data


def _parse_citations(data: dict) -> list[Citation]:
    """
    Extract citations from a Perplexity response.

    Prefers the titled search_results list; falls back to the bare
    citations URL list, using the host name as the title.
    """
    citations: list[Citation] = []
    seen: set[str] = set()

    for result in data.get("search_results") or []:
        if not isinstance(result, dict):
            continue
        url = str(result.get("url") or "").strip()
        if not url or url in seen:
            continue
        seen.add(url)
        citations.append(Citation(title=str(result.get("title") or _host(url)), url=url))

    for url in data.get("citations") or []:
        if not isinstance(url, str) or not url.strip() or url in seen:
            continue
        seen.add(url)
        citations.append(Citation(title=_host(url), url=url.strip()))

    return citations


def _host(url: str) -> str:
    return urlparse(url).netloc or url
