"""Workflow service: definition CRUD, version history and execution records."""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import delete as sa_delete, select, update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import EngineEvent, NodeStatus
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.utils import generate_slug, utc_now
from db.models.execution import WorkflowExecution
from db.models.node_execution import NodeExecution
from db.models.workflow import Workflow
from db.models.workflow_version import WorkflowVersion
from services.base import BaseService
from workflow.events import EventSink

logger = logging.getLogger(__name__)


def default_definition(slug: str) -> dict:
    """Single final state, the definition new workflows start from."""
    return {"id": slug, "initial": "start", "states": {"start": {"type": "final"}}}


class WorkflowService(BaseService[Workflow]):
    """Service for workflow definitions and their version history."""

    def __init__(self, db: AsyncSession, events: Optional[EventSink] = None):
        super().__init__(Workflow, db)
        self.events = events

    async def _emit(self, event: EngineEvent, payload: dict) -> None:
        if self.events is not None:
            await self.events.emit(event.value, payload)

    async def get_by_slug(self, slug: str) -> Optional[Workflow]:
        result = await self.db.execute(select(Workflow).where(Workflow.slug == slug))
        return result.scalar_one_or_none()

    async def list_workflows(
        self,
        q: Optional[str] = None,
        enabled: Optional[bool] = None,
        trigger_event: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[Workflow], int]:
        """List workflows, optionally searching by name."""
        conditions = [Workflow.name.ilike(f"%{q}%")] if q else []
        return await self.list(
            offset=offset,
            limit=limit,
            order_by="id",
            order_desc=False,
            filters={"enabled": enabled, "trigger_event": trigger_event},
            conditions=conditions,
        )

    async def create_workflow(
        self,
        name: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        definition: Optional[dict] = None,
        trigger_event: Optional[str] = None,
        trigger_condition: Optional[dict] = None,
        enabled: bool = True,
    ) -> Workflow:
        """Create a workflow. The slug is derived from the name unless given."""
        slug = slug or generate_slug(name)
        if not slug:
            raise ValidationError("Workflow name must contain at least one letter or digit")
        if await self.get_by_slug(slug):
            raise ConflictError(f'Workflow with slug "{slug}" already exists')

        wf = await self.create({
            "name": name,
            "slug": slug,
            "description": description,
            "definition": definition or default_definition(slug),
            "trigger_event": trigger_event,
            "trigger_condition": trigger_condition,
            "enabled": enabled,
            "version": 1,
        })
        logger.info(f"Workflow created: {wf.slug} ({wf.id})")
        await self._emit(EngineEvent.WORKFLOW_CREATED, {"id": wf.id, "name": wf.name, "slug": wf.slug})
        return wf

    async def update_workflow(
        self,
        workflow_id: int,
        data: dict[str, Any],
        version_description: Optional[str] = None,
    ) -> Optional[Workflow]:
        """Update workflow fields.

        A changed definition snapshots the previous one into
        ``workflow_versions`` and bumps ``version``.
        """
        wf = await self.get_by_id(workflow_id)
        if not wf:
            return None

        data = dict(data)
        definition = data.pop("definition", None)

        new_slug = data.get("slug")
        if new_slug and new_slug != wf.slug and await self.get_by_slug(new_slug):
            raise ConflictError(f'Workflow with slug "{new_slug}" already exists')

        if definition is not None and definition != wf.definition:
            await self._snapshot(wf, version_description)
            data["definition"] = definition
            data["version"] = wf.version + 1

        wf = await self.update(workflow_id, data)
        await self._emit(
            EngineEvent.WORKFLOW_UPDATED,
            {"id": wf.id, "name": wf.name, "version": wf.version},
        )
        return wf

    async def delete_workflow(self, workflow_id: int) -> bool:
        """Delete a workflow together with its version snapshots."""
        wf = await self.get_by_id(workflow_id)
        if not wf:
            return False

        await self.db.execute(
            sa_delete(WorkflowVersion).where(WorkflowVersion.workflow_id == workflow_id)
        )
        await self.delete(workflow_id)
        await self._emit(EngineEvent.WORKFLOW_DELETED, {"id": workflow_id, "name": wf.name})
        return True

    # ─── Versions ──────────────────────────────────────────

    async def _snapshot(self, wf: Workflow, description: Optional[str]) -> WorkflowVersion:
        snapshot = WorkflowVersion(
            workflow_id=wf.id,
            version=wf.version,
            definition=wf.definition,
            description=description,
        )
        self.db.add(snapshot)
        await self.db.flush()
        return snapshot

    async def list_versions(self, workflow_id: int) -> Sequence[WorkflowVersion]:
        """Snapshots of a workflow, newest first."""
        result = await self.db.execute(
            select(WorkflowVersion)
            .where(WorkflowVersion.workflow_id == workflow_id)
            .order_by(WorkflowVersion.version.desc())
        )
        return result.scalars().all()

    async def get_version(self, workflow_id: int, version_id: int) -> Optional[WorkflowVersion]:
        result = await self.db.execute(
            select(WorkflowVersion).where(
                WorkflowVersion.workflow_id == workflow_id,
                WorkflowVersion.id == version_id,
            )
        )
        return result.scalar_one_or_none()

    async def restore_version(self, workflow_id: int, version_id: int) -> Workflow:
        """Make an old snapshot the current definition.

        The current definition is snapshotted first, then the old one is
        copied over it under a new version number.
        """
        wf = await self.get_by_id(workflow_id)
        if not wf:
            raise NotFoundError("Workflow not found")
        snapshot = await self.get_version(workflow_id, version_id)
        if not snapshot:
            raise NotFoundError("Version not found")

        await self._snapshot(wf, f"Auto-saved before restore to v{snapshot.version}")
        new_version = wf.version + 1
        wf = await self.update(workflow_id, {"definition": snapshot.definition, "version": new_version})

        logger.info(f"Workflow {workflow_id} restored to v{snapshot.version} as v{new_version}")
        await self._emit(
            EngineEvent.WORKFLOW_UPDATED,
            {
                "id": wf.id,
                "name": wf.name,
                "version": new_version,
                "restoredFromVersion": snapshot.version,
            },
        )
        return wf


class ExecutionService(BaseService[WorkflowExecution]):
    """Service for execution records."""

    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowExecution, db)

    async def list_executions(
        self,
        workflow_id: Optional[int] = None,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[WorkflowExecution], int]:
        return await self.list(
            offset=offset,
            limit=limit,
            order_by="id",
            order_desc=True,
            filters={"workflow_id": workflow_id, "status": status},
        )


class NodeExecutionService(BaseService[NodeExecution]):
    """Service for per-node audit rows."""

    def __init__(self, db: AsyncSession):
        super().__init__(NodeExecution, db)

    async def list_for_execution(self, execution_id: int) -> Sequence[NodeExecution]:
        """Rows of one execution in the order they were created."""
        result = await self.db.execute(
            select(NodeExecution)
            .where(NodeExecution.execution_id == execution_id)
            .order_by(NodeExecution.id.asc())
        )
        return result.scalars().all()

    async def mark_open_skipped(self, execution_id: int) -> int:
        """Mark every running or pending row of an execution as skipped.

        Returns:
            Number of rows changed
        """
        result = await self.db.execute(
            sa_update(NodeExecution)
            .where(
                NodeExecution.execution_id == execution_id,
                NodeExecution.status.in_([NodeStatus.RUNNING.value, NodeStatus.PENDING.value]),
            )
            .values(status=NodeStatus.SKIPPED.value, completed_at=utc_now())
        )
        return result.rowcount or 0
