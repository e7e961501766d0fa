"""In-memory provider for testing and dry runs."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from ..constants import DEFAULT_TOKEN_INPUT, TERMINAL_STATE
from ..contracts import Artifact, HeadCommit, Label, Scope, WorkflowRun, derive_label
from ..exceptions import ProviderError
from .base import BaseProvider

EchoMode = Literal["label", "commit-message", "none"]


class InMemoryProvider(BaseProvider):
    """Simulate a workflow provider inside the current process.

    Dispatched runs appear immediately in the listing and complete after
    ``completes_after`` status fetches. ``echo`` controls how the triggered
    workflow re-emits the correlation token: as a run label, inside the head
    commit message, or not at all.
    """

    def __init__(
        self,
        echo: EchoMode = "label",
        completes_after: int = 1,
        conclusion: str = "success",
        token_input: str = DEFAULT_TOKEN_INPUT,
        artifacts: Optional[Dict[str, bytes]] = None,
    ) -> None:
        self.echo = echo
        self.completes_after = completes_after
        self.conclusion = conclusion
        self.token_input = token_input
        self.default_artifacts = artifacts or {}
        self.dispatched: List[Tuple[Scope, str, str, Dict[str, Any]]] = []
        self._runs: Dict[int, Tuple[Scope, WorkflowRun]] = {}
        self._artifacts: Dict[int, List[Tuple[Artifact, bytes]]] = {}
        self._fetches: Dict[int, int] = {}
        self._next_id = 1
        self._next_artifact_id = 1
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._lock = asyncio.Lock()

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def add_run(
        self,
        scope: Scope,
        branch: str = "main",
        labels: Optional[List[str]] = None,
        message: str = "",
        status: str = "queued",
        conclusion: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> WorkflowRun:
        """Seed a run, as if dispatched by someone else."""
        run = WorkflowRun(
            id=self._next_id,
            status=status,
            conclusion=conclusion,
            created_at=created_at or self._tick(),
            head_branch=branch,
            head_commit=HeadCommit(message=message),
            labels=[Label(name=name) for name in labels or []],
        )
        self._next_id += 1
        self._runs[run.id] = (scope, run)
        for name, payload in self.default_artifacts.items():
            self.add_artifact(run.id, name, payload)
        return run

    def add_artifact(self, run_id: int, name: str, payload: bytes) -> Artifact:
        artifact = Artifact(
            id=self._next_artifact_id, name=name, size_in_bytes=len(payload)
        )
        self._next_artifact_id += 1
        self._artifacts.setdefault(run_id, []).append((artifact, payload))
        return artifact

    def complete_run(self, run_id: int, conclusion: str = "success") -> None:
        _, run = self._runs[run_id]
        run.status = TERMINAL_STATE
        run.conclusion = conclusion

    async def dispatch(
        self, scope: Scope, workflow_ref: str, ref: str, inputs: Dict[str, Any]
    ) -> None:
        async with self._lock:
            self.dispatched.append((scope, workflow_ref, ref, dict(inputs)))
            token = str(inputs.get(self.token_input, ""))
            labels = [derive_label(token)] if self.echo == "label" and token else []
            message = (
                f"Triggered run {token}" if self.echo == "commit-message" else ""
            )
            self.add_run(scope, branch=ref, labels=labels, message=message)

    async def list_runs(
        self,
        scope: Scope,
        branch: Optional[str] = None,
        per_page: int = 100,
        label: Optional[str] = None,
    ) -> List[WorkflowRun]:
        async with self._lock:
            runs = [
                run.model_copy(deep=True)
                for run_scope, run in self._runs.values()
                if run_scope == scope
                and (branch is None or run.head_branch == branch)
                and (label is None or run.has_label(label))
            ]
        runs.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return runs[:per_page]

    async def add_labels(self, scope: Scope, run_id: int, labels: List[str]) -> None:
        async with self._lock:
            _, run = self._lookup(scope, run_id)
            for name in labels:
                if not run.has_label(name):
                    run.labels.append(Label(name=name))

    async def get_run(self, scope: Scope, run_id: int) -> WorkflowRun:
        async with self._lock:
            _, run = self._lookup(scope, run_id)
            self._fetches[run_id] = self._fetches.get(run_id, 0) + 1
            if run.status != TERMINAL_STATE:
                if self._fetches[run_id] >= self.completes_after:
                    run.status = TERMINAL_STATE
                    run.conclusion = self.conclusion
                else:
                    run.status = "in_progress"
            return run.model_copy(deep=True)

    def fetch_count(self, run_id: int) -> int:
        return self._fetches.get(run_id, 0)

    async def list_artifacts(self, scope: Scope, run_id: int) -> List[Artifact]:
        self._lookup(scope, run_id)
        return [artifact for artifact, _ in self._artifacts.get(run_id, [])]

    async def download_artifact(self, scope: Scope, artifact_id: int) -> bytes:
        for run_id, entries in self._artifacts.items():
            for artifact, payload in entries:
                if artifact.id == artifact_id and self._runs[run_id][0] == scope:
                    return payload
        raise ProviderError(f"Artifact {artifact_id} not found", status_code=404)

    def _lookup(self, scope: Scope, run_id: int) -> Tuple[Scope, WorkflowRun]:
        entry = self._runs.get(run_id)
        if entry is None or entry[0] != scope:
            raise ProviderError(f"Run {run_id} not found", status_code=404)
        return entry
