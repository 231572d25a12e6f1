"""
Aggregator that merges matches from every configured source adapter.

Adapters are called concurrently. One adapter's failure or timeout never
discards another adapter's results. When nothing at all comes back the
fixed synthetic dataset is returned instead.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from wicketwise.config import Config
from wicketwise.drift import BaselineTracker
from wicketwise.errors import CredentialRejectedError, InvalidInputError, QuotaExhaustedError
from wicketwise.models import Match
from wicketwise.source_adapter import SourceAdapter
from wicketwise.synthetic_adapter import fallback_dataset

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class AdapterStatus:
    """
    Outcome of the last poll of one adapter.

    Attributes:
        name: Adapter name (its source tag)
        ok: Whether the adapter returned data
        match_count: Matches contributed
        error_kind: "credentials", "invalid_input", "rate_limited",
            "timeout", "unavailable" or None
        error: Error message, if any
        checked_at: Time of the poll
    """
    name: str
    ok: bool
    match_count: int = 0
    error_kind: Optional[str] = None
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _error_kind(exc: BaseException) -> str:
    if isinstance(exc, CredentialRejectedError):
        return "credentials"
    if isinstance(exc, InvalidInputError):
        return "invalid_input"
    if isinstance(exc, QuotaExhaustedError):
        return "rate_limited"
    return "unavailable"


class Aggregator:
    """
    Fan-out over source adapters.

    Args:
        adapters: Adapters to poll, in priority order (used for de-duplication)
        timeout_seconds: Bound on how long any adapter may take
        baselines: Tracker stamping initial prices; one is created if omitted
    """

    def __init__(
        self,
        adapters: list[SourceAdapter],
        timeout_seconds: Optional[float] = None,
        baselines: Optional[BaselineTracker] = None,
    ):
        self.adapters = list(adapters)
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else Config.ADAPTER_TIMEOUT_SECONDS
        self.baselines = baselines or BaselineTracker()
        self.adapter_status: dict[str, AdapterStatus] = {}
        self.used_fallback = False

    def get_aggregated_matches(self) -> list[Match]:
        """
        Poll every adapter and compose the combined match list.

        Returns:
            Matches from all successful adapters, or the synthetic fallback
            dataset when none returned anything.
        """
        results = self._collect()

        combined: list[Match] = []
        seen: set[str] = set()
        for idx, adapter in enumerate(self.adapters):
            for match in results.get(idx, []):
                if match.id in seen:
                    logger.debug(f"Duplicate match {match.id} from {adapter.name} dropped")
                    continue
                seen.add(match.id)
                combined.append(match)

        if not combined:
            logger.warning("No adapter returned matches, serving synthetic fallback dataset")
            combined = fallback_dataset()
            self.used_fallback = True
        else:
            self.used_fallback = False

        self.baselines.apply(combined)
        logger.info(f"Aggregated {len(combined)} matches from {len(results)} source(s)")
        return combined

    def credential_failures(self) -> list[str]:
        """Names of adapters whose credentials were rejected on the last poll."""
        return [s.name for s in self.adapter_status.values() if s.error_kind == "credentials"]

    def _collect(self) -> dict[int, list[Match]]:
        results: dict[int, list[Match]] = {}
        if not self.adapters:
            logger.warning("No source adapters configured")
            return results

        executor = ThreadPoolExecutor(max_workers=len(self.adapters), thread_name_prefix="adapter")
        try:
            future_to_adapter = {
                executor.submit(adapter.fetch_live_matches): (idx, adapter)
                for idx, adapter in enumerate(self.adapters)
            }
            done, not_done = wait(future_to_adapter, timeout=self.timeout_seconds)

            for future in done:
                idx, adapter = future_to_adapter[future]
                try:
                    matches = future.result()
                except Exception as e:
                    logger.error(f"Adapter {adapter.name} failed: {e}")
                    self.adapter_status[adapter.name] = AdapterStatus(
                        name=adapter.name, ok=False, error_kind=_error_kind(e), error=str(e)
                    )
                    continue
                results[idx] = matches
                self.adapter_status[adapter.name] = AdapterStatus(
                    name=adapter.name, ok=True, match_count=len(matches)
                )
                logger.debug(f"Adapter {adapter.name} returned {len(matches)} matches")

            for future in not_done:
                _, adapter = future_to_adapter[future]
                future.cancel()
                logger.error(f"Adapter {adapter.name} timed out after {self.timeout_seconds}s")
                self.adapter_status[adapter.name] = AdapterStatus(
                    name=adapter.name, ok=False, error_kind="timeout",
                    error=f"timed out after {self.timeout_seconds}s",
                )
        finally:
            # Do not block on adapters that are still running past the deadline
            executor.shutdown(wait=False, cancel_futures=True)

        return results
