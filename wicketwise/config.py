"""
Configuration management for the cricket market consensus engine.

This module handles all configuration loading from environment variables
and provides type-safe access to configuration values throughout the application.
"""

import os
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """
    Centralized configuration class for the consensus engine.

    All configuration values are loaded from environment variables with
    sensible defaults where appropriate. Credentials must be provided via
    environment variables (or the persisted credentials document) and are
    never baked into the code.
    """

    # Reasoning oracle keys (optional - analysis degrades without them)
    ANTHROPIC_API_KEY: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    PERPLEXITY_API_KEY: Optional[str] = os.getenv("PERPLEXITY_API_KEY")

    # Reasoning oracle endpoints and models
    ANTHROPIC_API_URL: str = os.getenv("ANTHROPIC_API_URL", "https://api.anthropic.com/v1/messages")
    PERPLEXITY_API_URL: str = os.getenv("PERPLEXITY_API_URL", "https://api.perplexity.ai/chat/completions")
    CLAUDE_MODEL: str = os.getenv("CLAUDE_MODEL", "claude-3-5-sonnet-20241022")
    PERPLEXITY_MODEL: str = os.getenv("PERPLEXITY_MODEL", "sonar-pro")
    CLAUDE_TEMPERATURE: float = float(os.getenv("CLAUDE_TEMPERATURE", "0.3"))
    CLAUDE_MAX_TOKENS: int = int(os.getenv("CLAUDE_MAX_TOKENS", "4096"))
    PERPLEXITY_MAX_TOKENS: int = int(os.getenv("PERPLEXITY_MAX_TOKENS", "2048"))
    PERPLEXITY_TEMPERATURE: float = float(os.getenv("PERPLEXITY_TEMPERATURE", "0.2"))

    # Exchange (Betfair) configuration
    BETFAIR_APP_KEY: Optional[str] = os.getenv("BETFAIR_APP_KEY")
    BETFAIR_SESSION_TOKEN: Optional[str] = os.getenv("BETFAIR_SESSION_TOKEN")
    BETFAIR_API_URL: str = os.getenv(
        "BETFAIR_API_URL",
        "https://api.betfair.com/exchange/betting/rest/v1.0"
    )
    # Optional forwarding prefix, e.g. "https://relay.example.net/"
    FORWARDING_PREFIX: str = os.getenv("FORWARDING_PREFIX", "")

    # Scraped bookmaker (Jeebet) configuration
    JEEBET_USERNAME: Optional[str] = os.getenv("JEEBET_USERNAME")
    JEEBET_SESSION_COOKIE: Optional[str] = os.getenv("JEEBET_SESSION_COOKIE")
    JEEBET_API_URL: str = os.getenv("JEEBET_API_URL", "https://jeebet.net/api")

    # Market classifier
    CLASSIFIER_STRICTNESS: str = os.getenv("CLASSIFIER_STRICTNESS", "standard")

    # Consensus and drift
    CONSENSUS_THRESHOLD: int = int(os.getenv("CONSENSUS_THRESHOLD", "2"))
    EXPERT_PANEL_SIZE: int = int(os.getenv("EXPERT_PANEL_SIZE", "3"))
    DRIFT_THRESHOLD_PCT: float = float(os.getenv("DRIFT_THRESHOLD_PCT", "15.0"))
    PULSE_CACHE_TTL_SECONDS: int = int(os.getenv("PULSE_CACHE_TTL_SECONDS", "300"))
    STRUCTURE_CACHE_TTL_SECONDS: int = int(os.getenv("STRUCTURE_CACHE_TTL_SECONDS", "120"))

    # Request timeouts (seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))
    RESEARCH_TIMEOUT: int = int(os.getenv("RESEARCH_TIMEOUT", "60"))
    ADAPTER_TIMEOUT_SECONDS: float = float(os.getenv("ADAPTER_TIMEOUT_SECONDS", "10"))

    # Background tasks
    POLL_INTERVAL_SECONDS: int = int(os.getenv("POLL_INTERVAL_SECONDS", "15"))
    LATENCY_PROBE_INTERVAL_SECONDS: int = int(os.getenv("LATENCY_PROBE_INTERVAL_SECONDS", "30"))
    LATENCY_PROBE_URL: str = os.getenv("LATENCY_PROBE_URL", "https://api.betfair.com")
    SCHEDULER_TIMEZONE: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")

    # Persisted documents
    DATA_DIR: Path = Path(os.getenv("DATA_DIR", "data"))

    # Telegram configuration (optional)
    TELEGRAM_BOT_TOKEN: Optional[str] = os.getenv("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID: Optional[str] = os.getenv("TELEGRAM_CHAT_ID")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[Path] = Path(os.getenv("LOG_FILE", "logs/wicketwise.log")) if os.getenv("LOG_FILE") else None

    @classmethod
    def validate(cls) -> tuple[bool, list[str]]:
        """
        Validate configuration values.

        Missing oracle keys are not errors: the engine runs without them and
        every analysis degrades to "no signal".

        Returns:
            tuple: (is_valid, list_of_errors)
        """
        errors: list[str] = []

        if cls.CLASSIFIER_STRICTNESS not in ("standard", "lenient"):
            errors.append("CLASSIFIER_STRICTNESS must be 'standard' or 'lenient'")

        if cls.EXPERT_PANEL_SIZE < 1:
            errors.append("EXPERT_PANEL_SIZE must be at least 1")

        if not (1 <= cls.CONSENSUS_THRESHOLD <= cls.EXPERT_PANEL_SIZE):
            errors.append("CONSENSUS_THRESHOLD must be between 1 and EXPERT_PANEL_SIZE")

        if cls.DRIFT_THRESHOLD_PCT <= 0:
            errors.append("DRIFT_THRESHOLD_PCT must be positive")

        if cls.PULSE_CACHE_TTL_SECONDS < 0:
            errors.append("PULSE_CACHE_TTL_SECONDS cannot be negative")

        if cls.ADAPTER_TIMEOUT_SECONDS <= 0:
            errors.append("ADAPTER_TIMEOUT_SECONDS must be positive")

        if cls.POLL_INTERVAL_SECONDS < 1:
            errors.append("POLL_INTERVAL_SECONDS must be at least 1")

        if not (0.0 <= cls.CLAUDE_TEMPERATURE <= 1.0):
            errors.append("CLAUDE_TEMPERATURE must be between 0.0 and 1.0")

        if not (0.0 <= cls.PERPLEXITY_TEMPERATURE <= 1.0):
            errors.append("PERPLEXITY_TEMPERATURE must be between 0.0 and 1.0")

        return (len(errors) == 0, errors)

    @classmethod
    def ensure_directories(cls) -> None:
        """
        Ensure all required directories exist.

        Creates directories for persisted documents and logs if they don't exist.
        """
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)
        if cls.LOG_FILE:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
