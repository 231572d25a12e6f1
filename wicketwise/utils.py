"""
Utility functions for the cricket market consensus engine.

This module provides shared helper utilities used across the codebase.
All functions are pure helpers with no domain logic, apart from the
latency probe which performs a single HTTP request.
"""

import json
import logging
import time
import uuid
from typing import Any, Optional

import requests
from requests.exceptions import RequestException

# Configure module logger
logger = logging.getLogger(__name__)


def safe_json_loads(text: str, default: Optional[Any] = None) -> Optional[Any]:
    """
    Safely parse JSON from text, handling malformed AI responses.

    Attempts to extract JSON from text that may contain markdown code blocks,
    explanatory text, or other formatting. Returns default on failure.

    Args:
        text: Text string that may contain JSON
        default: Default value to return if parsing fails (default: None)

    Returns:
        Parsed JSON object/dict/list, or default value if parsing fails
    """
    if not text or not isinstance(text, str):
        return default

    text = text.strip()

    # Remove markdown code blocks if present
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    text = text.strip()

    # Try to find JSON object boundaries
    first_brace = text.find("{")
    first_bracket = text.find("[")

    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        last_brace = text.rfind("}")
        if last_brace != -1 and last_brace > first_brace:
            text = text[first_brace:last_brace + 1]
    elif first_bracket != -1:
        last_bracket = text.rfind("]")
        if last_bracket != -1 and last_bracket > first_bracket:
            text = text[first_bracket:last_bracket + 1]

    if not text:
        return default

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON decode error: {e}")
        logger.debug(f"Failed to parse text: {text[:200]}")
        return default


def generate_id(length: int = 9) -> str:
    """Short random identifier for trades and synthetic records."""
    return uuid.uuid4().hex[:length]


def clamp(value: float, min_value: float, max_value: float) -> float:
    """
    Clamp a value between minimum and maximum bounds.

    Raises:
        ValueError: If min_value > max_value
    """
    if min_value > max_value:
        raise ValueError(f"min_value ({min_value}) must be <= max_value ({max_value})")

    return max(min_value, min(value, max_value))


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Safely convert a value to float with a default fallback.

    Handles None, strings, integers, and floats. Returns default on failure.
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default

    return default


def format_percentage(value: float, decimals: int = 1) -> str:
    """Format an already-scaled percentage value, e.g. 65.5 -> "65.5%"."""
    return f"{value:.{decimals}f}%"


def format_currency(value: float, decimals: int = 0) -> str:
    """
    Format a float value as a signed currency string.

    Returns:
        Formatted currency string (e.g., "+$1,234" or "-$100")
    """
    sign = "-" if value < 0 else "+"
    return f"{sign}${abs(value):,.{decimals}f}"


def measure_latency(url: str, timeout: float = 5.0) -> Optional[float]:
    """
    Measure round-trip time of a HEAD request.

    Args:
        url: URL to probe
        timeout: Request timeout in seconds

    Returns:
        Latency in milliseconds, or None if the probe failed
    """
    start = time.perf_counter()
    try:
        requests.head(url, timeout=timeout, allow_redirects=False)
    except RequestException as e:
        logger.debug(f"Latency probe to {url} failed: {e}")
        return None
    return round((time.perf_counter() - start) * 1000, 1)
