"""Core data contracts exchanged between runbeacon components."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import LABEL_PREFIX, TERMINAL_STATE


def new_correlation_token() -> str:
    """Generate a fresh correlation token."""
    return uuid.uuid4().hex


def derive_label(correlation_token: str) -> str:
    """Return the run label that identifies ``correlation_token``."""
    return f"{LABEL_PREFIX}{correlation_token}"


class Scope(BaseModel):
    """Repository a workflow lives in."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str

    @classmethod
    def parse(cls, value: str) -> "Scope":
        """Parse an ``owner/repo`` string."""
        owner, sep, repo = value.strip().partition("/")
        if not sep or not owner or not repo or "/" in repo:
            raise ValueError(f"Scope must look like 'owner/repo', got {value!r}")
        return cls(owner=owner, repo=repo)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.owner}/{self.repo}"


class Label(BaseModel):
    name: str


class HeadCommit(BaseModel):
    message: str = ""


class WorkflowRun(BaseModel):
    """One entry of a provider run listing."""

    id: int
    status: Optional[str] = None
    conclusion: Optional[str] = None
    created_at: Optional[datetime] = None
    head_branch: Optional[str] = None
    head_commit: Optional[HeadCommit] = None
    labels: List[Label] = Field(default_factory=list)

    def has_label(self, name: str) -> bool:
        return any(label.name == name for label in self.labels)

    @property
    def commit_message(self) -> str:
        return self.head_commit.message if self.head_commit else ""


class RunHandle(BaseModel):
    """Provider identifier of a dispatched run, fixed once resolved."""

    model_config = ConfigDict(frozen=True)

    run_id: int
    correlation_token: str


class RunStatus(BaseModel):
    """Status snapshot of a run at the time it was fetched."""

    identifier: int
    lifecycle_state: Optional[str] = None
    conclusion: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.lifecycle_state == TERMINAL_STATE

    @property
    def succeeded(self) -> bool:
        return self.is_terminal and self.conclusion == "success"

    @classmethod
    def from_run(cls, run: WorkflowRun) -> "RunStatus":
        return cls(
            identifier=run.id, lifecycle_state=run.status, conclusion=run.conclusion
        )


class Artifact(BaseModel):
    """Entry of a run's artifact listing."""

    id: int
    name: str
    size_in_bytes: Optional[int] = None
    expired: bool = False


class OrchestrationState(str, Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    CORRELATED = "correlated"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


class OrchestrationResult(BaseModel):
    """Outcome of one orchestrated run."""

    correlation_token: str
    state: OrchestrationState
    run_handle: Optional[RunHandle] = None
    status: Optional[RunStatus] = None
    artifact_path: Optional[str] = None
    artifact_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """``True`` when the remote run itself concluded successfully."""
        return (
            self.state == OrchestrationState.COMPLETED
            and self.status is not None
            and self.status.succeeded
        )
