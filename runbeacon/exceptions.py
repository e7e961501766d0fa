"""Error types raised by runbeacon components."""

from __future__ import annotations

from typing import Optional


class RunbeaconError(Exception):
    """Base class for all runbeacon errors."""

    def __init__(self, message: str, correlation_token: Optional[str] = None) -> None:
        super().__init__(message)
        self.correlation_token = correlation_token


class ProviderError(RunbeaconError):
    """A request to the workflow provider failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        correlation_token: Optional[str] = None,
    ) -> None:
        super().__init__(message, correlation_token)
        self.status_code = status_code


class DispatchError(RunbeaconError):
    """The provider rejected the trigger request."""


class CorrelationError(RunbeaconError):
    """A correlation token could not be resolved to a single run."""


class CorrelationNotFound(CorrelationError):
    """No run in the lookback window matches the token."""


class CorrelationAmbiguous(CorrelationError):
    """More than one run matches the token and ambiguity is rejected."""

    def __init__(
        self,
        message: str,
        candidates: list[int],
        correlation_token: Optional[str] = None,
    ) -> None:
        super().__init__(message, correlation_token)
        self.candidates = candidates


class StatusFetchError(RunbeaconError):
    """Too many consecutive status fetches failed."""


class WaitTimeout(RunbeaconError):
    """The run did not reach a terminal state before the deadline."""


class WaitCancelled(RunbeaconError):
    """The poll loop was interrupted by an external cancellation signal."""


class ArtifactDownloadError(RunbeaconError):
    """Listing or downloading the run's artifact failed."""
