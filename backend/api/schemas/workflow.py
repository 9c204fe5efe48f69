"""Workflow schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from api.schemas.common import CamelModel


class WorkflowCreate(CamelModel):
    """Request to create a workflow."""

    name: str = Field(min_length=1, description="Workflow name")
    slug: Optional[str] = Field(default=None, description="URL slug, derived from the name when omitted")
    description: Optional[str] = Field(default=None, description="Workflow description")
    definition: Optional[Dict[str, Any]] = Field(default=None, description="State machine definition")
    trigger_event: Optional[str] = Field(default=None, description="Event that triggers the workflow")
    trigger_condition: Optional[Dict[str, Any]] = Field(default=None, description="Condition on the trigger payload")
    enabled: bool = Field(default=True, description="Whether the workflow can run")


class WorkflowUpdate(CamelModel):
    """Request to update a workflow."""

    name: Optional[str] = Field(default=None, min_length=1, description="Workflow name")
    slug: Optional[str] = Field(default=None, min_length=1, description="URL slug")
    description: Optional[str] = Field(default=None, description="Workflow description")
    definition: Optional[Dict[str, Any]] = Field(default=None, description="State machine definition")
    trigger_event: Optional[str] = Field(default=None, description="Event that triggers the workflow")
    trigger_condition: Optional[Dict[str, Any]] = Field(default=None, description="Condition on the trigger payload")
    enabled: Optional[bool] = Field(default=None, description="Whether the workflow can run")
    version_description: Optional[str] = Field(
        default=None, description="Note stored with the snapshot of the previous definition"
    )


class WorkflowResponse(CamelModel):
    """Workflow information response."""

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    definition: Dict[str, Any]
    trigger_event: Optional[str] = None
    trigger_condition: Optional[Dict[str, Any]] = None
    enabled: bool
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowListResponse(CamelModel):
    """Paginated list of workflows."""

    data: List[WorkflowResponse]
    total: int
    page: int
    per_page: int


class WorkflowVersionResponse(CamelModel):
    """Snapshot of a previous workflow definition."""

    id: int
    workflow_id: int
    version: int
    definition: Dict[str, Any]
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class ExecuteWorkflowResponse(CamelModel):
    execution_id: int
