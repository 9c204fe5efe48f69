"""Workflow execution endpoints: list, inspect and cancel runs."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from api.schemas.common import PaginationParams
from api.schemas.execution import (
    ExecutionDetailResponse,
    ExecutionListResponse,
    ExecutionResponse,
    NodeExecutionResponse,
)
from app.dependencies import get_db, get_engine
from core.constants import ExecutionStatus
from core.utils import calculate_offset
from services.workflow_service import ExecutionService
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow-executions", tags=["executions"])


@router.get("", response_model=ExecutionListResponse)
async def list_executions(
    pagination: PaginationParams = Depends(),
    workflow_id: Optional[int] = Query(None, alias="workflowId"),
    status_filter: Optional[ExecutionStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> ExecutionListResponse:
    """
    List executions, newest first.
    """
    executions, total = await ExecutionService(db).list_executions(
        workflow_id=workflow_id,
        status=status_filter.value if status_filter else None,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return ExecutionListResponse(
        data=[ExecutionResponse.model_validate(e) for e in executions],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/{execution_id}", response_model=ExecutionDetailResponse)
async def get_execution(
    execution_id: int,
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionDetailResponse:
    """
    Get an execution together with every node it ran.
    """
    result = await engine.get_execution_status(execution_id)
    detail = ExecutionDetailResponse.model_validate(result["execution"])
    detail.nodes = [NodeExecutionResponse.model_validate(n) for n in result["nodes"]]
    return detail


@router.post("/{execution_id}/cancel", response_model=dict[str, Any])
async def cancel_execution(
    execution_id: int,
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Cancel a running execution.

    Open node rows are marked skipped; a run in this process stops at its
    next step.
    """
    await engine.cancel_workflow(execution_id)
    return {"success": True, "executionId": execution_id}
