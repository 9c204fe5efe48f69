"""Execution model for the workflow engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ExecutionStatus
from db.base import BaseModel


class WorkflowExecution(BaseModel):
    """One run of a workflow.

    Attributes:
        id: Serial identifier
        workflow_id: Workflow being executed
        status: pending, running, completed, failed or cancelled
        trigger_event: Event that started the run, if any
        trigger_payload: Payload the run was started with
        context: Accumulated key/value context, checkpointed after every step
        snapshot_json: Reserved for a persisted interpreter snapshot
        current_state: Name of the state the interpreter is in
        started_at: Run start timestamp
        completed_at: Set once the run reaches a terminal status
        error: Message of the fatal error for failed runs
    """

    __tablename__ = "workflow_executions"

    workflow_id: Mapped[int] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(32), default=ExecutionStatus.PENDING.value, nullable=False, index=True
    )
    trigger_event: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    trigger_payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    snapshot_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    current_state: Mapped[str] = mapped_column(String(128), default="initial", nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
