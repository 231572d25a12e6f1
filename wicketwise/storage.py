"""
Storage module for the flat JSON documents the engine reads and writes.

Four documents live under Config.DATA_DIR: trade history, user rules,
execution configuration and source credentials. Each is written whole
(last write wins) through a temporary file and an atomic rename. Missing
or unreadable documents load defaults so a first run needs no setup.
"""

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from wicketwise.config import Config
from wicketwise.models import ExecutionConfig, Trade, UserRule

# Configure module logger
logger = logging.getLogger(__name__)

TRADES_DOCUMENT = "trades.json"
RULES_DOCUMENT = "rules.json"
EXECUTION_CONFIG_DOCUMENT = "execution_config.json"
CREDENTIALS_DOCUMENT = "credentials.json"


DEFAULT_RULES: list[UserRule] = [
    UserRule(
        id="mean-reversal-extreme",
        name="Mean Reversal Extremes",
        description=(
            "Detects aggressive market line stretching (e.g. ODI scores >380 or T20 >230) "
            "where statistical mean reversal probability is high despite match context."
        ),
        min_odds=1.05,
        max_odds=10.0,
    ),
    UserRule(
        id="lay-the-favorite-pp",
        name="Betfair Lay-the-Favorite",
        description="Lay the favorite if they are chasing and the RRR climbs > 10.5 in middle overs.",
        min_odds=1.1,
        max_odds=1.6,
    ),
    UserRule(
        id="volume-spike-wickets",
        name="Liquidity Momentum Check",
        description="Back the bowling side if a massive volume spike occurs before a ball is bowled.",
        min_odds=1.8,
        max_odds=3.5,
    ),
    UserRule(
        id="variance-drift-back",
        name="Discipline: Variance Play",
        description="Alert if current odds drift > 20% from SP despite no major wicket loss.",
        min_odds=1.5,
        max_odds=5.0,
    ),
]


class Storage:
    """
    Repository for the persisted JSON documents.

    Provides load/save pairs for trades, rules, execution config and
    credentials. Load methods never raise on a missing or corrupt file.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize storage with a data directory.

        Args:
            data_dir: Directory holding the documents. If None, uses Config.DATA_DIR
        """
        self.data_dir = Path(data_dir or Config.DATA_DIR)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _atomic_write(self, name: str) -> Iterator[Any]:
        """
        Context manager yielding a text handle whose content replaces the
        document on successful exit.
        """
        target = self.data_dir / name
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yield handle
            os.replace(tmp_path, target)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _read(self, name: str, default: Any) -> Any:
        path = self.data_dir / name
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read {path}, using defaults: {e}")
            return default

    def _write(self, name: str, payload: Any) -> bool:
        try:
            with self._atomic_write(name) as handle:
                json.dump(payload, handle, indent=2, default=str)
            logger.debug(f"Saved document {name}")
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Error saving document {name}: {e}", exc_info=True)
            return False

    # Trade history

    def load_trades(self) -> list[Trade]:
        raw_trades = self._read(TRADES_DOCUMENT, [])
        if not isinstance(raw_trades, list):
            logger.warning("Trades document is not a list, starting with an empty history")
            return []

        trades = []
        for idx, raw in enumerate(raw_trades):
            try:
                trades.append(Trade.from_dict(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable trade record {idx}: {e}")
        return trades

    def save_trades(self, trades: list[Trade]) -> bool:
        return self._write(TRADES_DOCUMENT, [trade.to_dict() for trade in trades])

    # User rules

    def load_rules(self) -> list[UserRule]:
        """Load user rules, seeding the built-in set on first run."""
        raw_rules = self._read(RULES_DOCUMENT, None)
        if raw_rules is None:
            logger.info("No rules document found, using default rule set")
            return [UserRule(**vars(rule)) for rule in DEFAULT_RULES]
        if not isinstance(raw_rules, list):
            logger.warning("Rules document is not a list, using default rule set")
            return [UserRule(**vars(rule)) for rule in DEFAULT_RULES]

        rules = []
        for idx, raw in enumerate(raw_rules):
            try:
                rules.append(UserRule.from_dict(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable rule record {idx}: {e}")
        return rules

    def save_rules(self, rules: list[UserRule]) -> bool:
        return self._write(RULES_DOCUMENT, [rule.to_dict() for rule in rules])

    # Execution configuration

    def load_execution_config(self) -> ExecutionConfig:
        raw = self._read(EXECUTION_CONFIG_DOCUMENT, {})
        if not isinstance(raw, dict):
            logger.warning("Execution config is not an object, using defaults")
            return ExecutionConfig()
        try:
            return ExecutionConfig.from_dict(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Execution config unreadable, using defaults: {e}")
            return ExecutionConfig()

    def save_execution_config(self, config: ExecutionConfig) -> bool:
        return self._write(EXECUTION_CONFIG_DOCUMENT, config.to_dict())

    # Source credentials (stored as-is, no hardening)

    def load_credentials(self) -> dict[str, dict[str, str]]:
        raw = self._read(CREDENTIALS_DOCUMENT, {})
        return raw if isinstance(raw, dict) else {}

    def save_credentials(self, credentials: dict[str, dict[str, str]]) -> bool:
        return self._write(CREDENTIALS_DOCUMENT, credentials)
