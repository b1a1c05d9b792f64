"""Exceptions raised by the PureProxy pipeline.

Only invalid manual submissions surface to callers; every other failure
(source fetch, probe, enrichment, persistence) is recovered and logged where
it happens.
"""


class PureProxyError(Exception):
    """Base exception for PureProxy."""


class NoValidInputError(PureProxyError, ValueError):
    """Raised when a manual submission contains no parseable ``ip[:port]``."""

    def __init__(self, message: str = "No valid ip[:port] entries found in submission.") -> None:
        super().__init__(message)
