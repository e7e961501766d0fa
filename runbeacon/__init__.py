"""Runbeacon: correlate and await asynchronously dispatched workflow runs."""

from .artifacts import ArtifactFetcher
from .config import RunbeaconConfig, load_config
from .contracts import (
    OrchestrationResult,
    OrchestrationState,
    RunHandle,
    RunStatus,
    Scope,
    derive_label,
    new_correlation_token,
)
from .correlation import RunCorrelator, get_strategy
from .dispatch import WorkflowDispatcher
from .exceptions import (
    ArtifactDownloadError,
    CorrelationAmbiguous,
    CorrelationNotFound,
    DispatchError,
    ProviderError,
    RunbeaconError,
    StatusFetchError,
    WaitCancelled,
    WaitTimeout,
)
from .orchestrator import RunOrchestrator
from .persistence import get_repository
from .providers import get_provider
from .waiter import CompletionWaiter

__version__ = "0.1.0"
__all__ = [
    "ArtifactFetcher",
    "CompletionWaiter",
    "OrchestrationResult",
    "OrchestrationState",
    "RunCorrelator",
    "RunHandle",
    "RunOrchestrator",
    "RunStatus",
    "RunbeaconConfig",
    "Scope",
    "WorkflowDispatcher",
    "derive_label",
    "get_provider",
    "get_repository",
    "get_strategy",
    "load_config",
    "new_correlation_token",
    "ArtifactDownloadError",
    "CorrelationAmbiguous",
    "CorrelationNotFound",
    "DispatchError",
    "ProviderError",
    "RunbeaconError",
    "StatusFetchError",
    "WaitCancelled",
    "WaitTimeout",
]
