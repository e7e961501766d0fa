"""In-memory implementation of the workflow record repository."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from .models import RecordStatus, WorkflowRecord, _utcnow
from .repository import WorkflowRecordRepository


class InMemoryWorkflowRecordRepository(WorkflowRecordRepository):
    """Store workflow records in local memory.

    Writes are serialized by a single lock so concurrent orchestrations
    never lose each other's updates. Data is not persisted across process
    restarts.
    """

    def __init__(self) -> None:
        self._records: Dict[str, WorkflowRecord] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def create_record(
        self,
        correlation_token: str,
        scope: str | None = None,
        workflow_ref: str | None = None,
    ) -> WorkflowRecord:
        async with self._lock:
            existing = self._records.get(correlation_token)
            if existing is not None:
                return existing.model_copy()
            record = WorkflowRecord(
                correlation_token=correlation_token,
                scope=scope,
                workflow_ref=workflow_ref,
            )
            self._records[correlation_token] = record
            return record.model_copy()

    async def _update(self, correlation_token: str, **changes: Any) -> None:
        async with self._lock:
            record = self._records.get(correlation_token)
            if record is None:
                record = WorkflowRecord(correlation_token=correlation_token)
            self._records[correlation_token] = record.model_copy(
                update={**changes, "updated_at": _utcnow()}
            )

    async def mark_resolved(self, correlation_token: str, run_id: int) -> None:
        await self._update(correlation_token, run_id=run_id)

    async def mark_completed(
        self, correlation_token: str, conclusion: str | None = None
    ) -> None:
        await self._update(
            correlation_token,
            status=RecordStatus.COMPLETED,
            conclusion=conclusion,
            error=None,
        )

    async def mark_failed(self, correlation_token: str, error: str) -> None:
        await self._update(correlation_token, status=RecordStatus.FAILED, error=error)

    async def get_record(self, correlation_token: str) -> WorkflowRecord | None:
        async with self._lock:
            record = self._records.get(correlation_token)
            return record.model_copy() if record else None

    async def list_records(self) -> list[WorkflowRecord]:
        async with self._lock:
            return [record.model_copy() for record in self._records.values()]
