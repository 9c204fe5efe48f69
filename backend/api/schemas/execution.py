"""Execution schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from api.schemas.common import CamelModel


class ExecutionResponse(CamelModel):
    """Execution run information response."""

    id: int = Field(description="Execution ID")
    workflow_id: int = Field(description="Workflow ID")
    status: str = Field(description="pending, running, completed, failed or cancelled")
    trigger_event: Optional[str] = None
    trigger_payload: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = Field(default=None, description="Accumulated context")
    current_state: str = Field(description="State the run is in or ended in")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = Field(default=None, description="Error message if the run failed")


class NodeExecutionResponse(CamelModel):
    """One executed node of a run."""

    id: int
    execution_id: int
    node_id: str
    node_type: str
    status: str
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class ExecutionDetailResponse(ExecutionResponse):
    """Execution with all of its node rows."""

    nodes: List[NodeExecutionResponse] = Field(default_factory=list)


class ExecutionListResponse(CamelModel):
    """Paginated list of executions."""

    data: List[ExecutionResponse]
    total: int
    page: int
    per_page: int
