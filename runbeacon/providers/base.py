"""Base provider interface for workflow-execution APIs."""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional

from ..contracts import Artifact, Scope, WorkflowRun


class BaseProvider(metaclass=abc.ABCMeta):
    """Abstract client for a provider that runs workflows asynchronously."""

    async def connect(self) -> None:
        """Open underlying connections (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Release underlying connections (no-op by default)."""
        pass

    async def __aenter__(self) -> "BaseProvider":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def dispatch(
        self, scope: Scope, workflow_ref: str, ref: str, inputs: Dict[str, Any]
    ) -> None:
        """Trigger ``workflow_ref`` on branch ``ref`` with ``inputs``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def list_runs(
        self,
        scope: Scope,
        branch: Optional[str] = None,
        per_page: int = 100,
        label: Optional[str] = None,
    ) -> List[WorkflowRun]:
        """Return the most recent runs, newest first."""
        raise NotImplementedError

    @abc.abstractmethod
    async def add_labels(self, scope: Scope, run_id: int, labels: List[str]) -> None:
        """Attach ``labels`` to a run."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_run(self, scope: Scope, run_id: int) -> WorkflowRun:
        """Fetch a single run."""
        raise NotImplementedError

    @abc.abstractmethod
    async def list_artifacts(self, scope: Scope, run_id: int) -> List[Artifact]:
        """List the artifacts uploaded by a run."""
        raise NotImplementedError

    @abc.abstractmethod
    async def download_artifact(self, scope: Scope, artifact_id: int) -> bytes:
        """Download an artifact archive as raw bytes."""
        raise NotImplementedError
