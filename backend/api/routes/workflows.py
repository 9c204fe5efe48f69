"""Workflow endpoints: CRUD, execute, version history and restore."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from api.schemas.common import MessageResponse, PaginationParams
from api.schemas.workflow import (
    ExecuteWorkflowResponse,
    WorkflowCreate,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowUpdate,
    WorkflowVersionResponse,
)
from app.dependencies import get_db, get_engine, get_event_bus
from core.utils import calculate_offset
from services.workflow_service import WorkflowService
from workflow.definition import parse_definition
from workflow.engine import WorkflowEngine
from workflow.events import EventBus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


def _service(db: AsyncSession, events: EventBus) -> WorkflowService:
    return WorkflowService(db, events=events)


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    pagination: PaginationParams = Depends(),
    q: Optional[str] = Query(None, description="Search by name"),
    enabled: Optional[bool] = Query(None),
    trigger_event: Optional[str] = Query(None, alias="triggerEvent"),
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> WorkflowListResponse:
    """
    List workflows (paginated).
    """
    svc = _service(db, events)
    workflows, total = await svc.list_workflows(
        q=q,
        enabled=enabled,
        trigger_event=trigger_event,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return WorkflowListResponse(
        data=[WorkflowResponse.model_validate(wf) for wf in workflows],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> WorkflowResponse:
    """
    Create a new workflow.

    A supplied definition must parse; without one the workflow starts
    as a single final state.
    """
    if request.definition is not None:
        parse_definition(request.definition)

    wf = await _service(db, events).create_workflow(
        name=request.name,
        slug=request.slug,
        description=request.description,
        definition=request.definition,
        trigger_event=request.trigger_event,
        trigger_condition=request.trigger_condition,
        enabled=request.enabled,
    )
    return WorkflowResponse.model_validate(wf)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    wf = await WorkflowService(db).get_by_id(workflow_id)
    if not wf:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    return WorkflowResponse.model_validate(wf)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: int,
    request: WorkflowUpdate,
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> WorkflowResponse:
    """
    Update a workflow.

    Changing the definition snapshots the previous one and bumps the
    version number.
    """
    data = request.model_dump(exclude_unset=True, exclude={"version_description"})
    if data.get("definition") is not None:
        parse_definition(data["definition"])

    wf = await _service(db, events).update_workflow(
        workflow_id, data, version_description=request.version_description
    )
    if not wf:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    return WorkflowResponse.model_validate(wf)


@router.delete("/{workflow_id}", response_model=MessageResponse)
async def delete_workflow(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> MessageResponse:
    deleted = await _service(db, events).delete_workflow(workflow_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    return MessageResponse(message="Workflow deleted")


# ─── Execute ────────────────────────────────────────────────


@router.post(
    "/{workflow_id}/execute",
    response_model=ExecuteWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
)
async def execute_workflow(
    workflow_id: int,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    wait: bool = Query(True, description="Respond after the run has finished"),
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecuteWorkflowResponse:
    """
    Start a manual run of a workflow.

    The request body is the trigger payload. A run that fails after it
    started still returns its execution id; inspect the execution for
    the outcome.
    """
    execution_id = await engine.execute_workflow(
        workflow_id,
        payload=payload or {},
        trigger_event="manual",
        wait=wait,
    )
    return ExecuteWorkflowResponse(execution_id=execution_id)


# ─── Versions ───────────────────────────────────────────────


@router.get("/{workflow_id}/versions", response_model=list[WorkflowVersionResponse])
async def list_versions(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[WorkflowVersionResponse]:
    """
    List snapshots of previous definitions, newest first.
    """
    svc = WorkflowService(db)
    if not await svc.exists(workflow_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    versions = await svc.list_versions(workflow_id)
    return [WorkflowVersionResponse.model_validate(v) for v in versions]


@router.get("/{workflow_id}/versions/{version_id}", response_model=WorkflowVersionResponse)
async def get_version(
    workflow_id: int,
    version_id: int,
    db: AsyncSession = Depends(get_db),
) -> WorkflowVersionResponse:
    snapshot = await WorkflowService(db).get_version(workflow_id, version_id)
    if not snapshot:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Version not found")
    return WorkflowVersionResponse.model_validate(snapshot)


@router.post("/{workflow_id}/versions/{version_id}/restore", response_model=WorkflowResponse)
async def restore_version(
    workflow_id: int,
    version_id: int,
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> WorkflowResponse:
    """
    Make a previous definition current again.

    The definition being replaced is snapshotted first.
    """
    wf = await _service(db, events).restore_version(workflow_id, version_id)
    return WorkflowResponse.model_validate(wf)
