"""Repository abstraction for workflow record tracking."""

from __future__ import annotations

from typing import Protocol

from .models import WorkflowRecord


class WorkflowRecordRepository(Protocol):
    """Protocol for stores of per-token workflow records."""

    async def create_record(
        self,
        correlation_token: str,
        scope: str | None = None,
        workflow_ref: str | None = None,
    ) -> WorkflowRecord:
        """Register a token as ``pending``."""

    async def mark_resolved(self, correlation_token: str, run_id: int) -> None:
        """Attach the provider run id to the record."""

    async def mark_completed(
        self, correlation_token: str, conclusion: str | None = None
    ) -> None:
        """Mark the record ``completed`` with the run's conclusion."""

    async def mark_failed(self, correlation_token: str, error: str) -> None:
        """Mark the record ``failed`` with an error description."""

    async def get_record(self, correlation_token: str) -> WorkflowRecord | None:
        """Retrieve the record for a token."""

    async def list_records(self) -> list[WorkflowRecord]:
        """Return all tracked records."""
