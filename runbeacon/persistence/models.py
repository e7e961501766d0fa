"""Data models for tracked workflow records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowRecord(BaseModel):
    """Observed state of one orchestrated run, keyed by correlation token."""

    correlation_token: str
    scope: Optional[str] = None
    workflow_ref: Optional[str] = None
    status: RecordStatus = RecordStatus.PENDING
    run_id: Optional[int] = None
    conclusion: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
