"""
Exception types raised at the adapter, oracle and ledger boundaries.

Only QuotaExhaustedError and AnalysisInProgressError are meant to reach a
caller of the consensus engine; everything else is converted into
"no data" or "no signal" before it leaves the pipeline.
"""


class WicketWiseError(Exception):
    """Base class for all engine errors."""


class UpstreamUnavailableError(WicketWiseError):
    """Network or HTTP failure from a source adapter or the oracle."""


class CredentialRejectedError(WicketWiseError):
    """Upstream refused the supplied credentials (403-class)."""


class QuotaExhaustedError(WicketWiseError):
    """Upstream rate limit hit; callers should back off instead of retrying."""

    def __init__(self, message: str = "quota exhausted", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class MalformedResponseError(WicketWiseError):
    """Oracle response did not match the declared schema."""


class InvalidInputError(WicketWiseError):
    """Caller input rejected before any network call was attempted."""


class AnalysisInProgressError(WicketWiseError):
    """An analysis for the same match id is still outstanding."""

    def __init__(self, match_id: str):
        super().__init__(f"analysis already in progress for match {match_id}")
        self.match_id = match_id


class TradeAlreadySettledError(WicketWiseError):
    """Settlement requested for a trade that is no longer MATCHED."""


class TradeNotFoundError(WicketWiseError):
    """No trade with the requested id exists in the ledger."""
