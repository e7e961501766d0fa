"""Record tracking for orchestrated workflow runs."""

from __future__ import annotations

from typing import Optional

from .inmemory import InMemoryWorkflowRecordRepository
from .models import RecordStatus, WorkflowRecord
from .repository import WorkflowRecordRepository


def get_repository(backend: Optional[str] = None) -> WorkflowRecordRepository:
    """Factory function to obtain a fresh workflow record repository.

    Each call returns a new store; callers inject it into the orchestrators
    that should share it.
    """

    backend = (backend or "inmemory").lower()
    if backend == "inmemory":
        return InMemoryWorkflowRecordRepository()
    raise ValueError(f"Unsupported repository backend: {backend}")


__all__ = [
    "RecordStatus",
    "WorkflowRecord",
    "WorkflowRecordRepository",
    "InMemoryWorkflowRecordRepository",
    "get_repository",
]
