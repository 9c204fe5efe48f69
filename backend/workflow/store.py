"""Persistence port of the workflow engine.

Every write opens a short session and commits right away, so API
readers see a run's progress while it is still executing. Terminal
writes only touch rows that are still ``running``; a run that was
cancelled meanwhile keeps its ``cancelled`` status.
"""

from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.constants import ExecutionStatus, NodeStatus
from core.utils import to_jsonable, utc_now
from db.models.execution import WorkflowExecution
from db.models.node_execution import NodeExecution
from db.models.workflow import Workflow
from services.workflow_service import NodeExecutionService


class ExecutionStore:
    """Reads and writes execution and node rows for the engine."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # ─── Workflows ─────────────────────────────────────────

    async def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        async with self.session_factory() as session:
            return await session.get(Workflow, workflow_id)

    # ─── Executions ────────────────────────────────────────

    async def create_execution(
        self,
        workflow_id: int,
        payload: dict,
        context: dict,
        current_state: str,
        trigger_event: Optional[str] = None,
    ) -> WorkflowExecution:
        async with self.session_factory() as session:
            execution = WorkflowExecution(
                workflow_id=workflow_id,
                status=ExecutionStatus.RUNNING.value,
                trigger_event=trigger_event,
                trigger_payload=to_jsonable(payload),
                context=to_jsonable(context),
                current_state=current_state,
                started_at=utc_now(),
            )
            session.add(execution)
            await session.commit()
            await session.refresh(execution)
            return execution

    async def get_execution(self, execution_id: int) -> Optional[WorkflowExecution]:
        async with self.session_factory() as session:
            return await session.get(WorkflowExecution, execution_id)

    async def checkpoint(self, execution_id: int, current_state: str, context: dict) -> None:
        await self._update_execution(
            execution_id,
            only_running=True,
            current_state=current_state,
            context=to_jsonable(context),
        )

    async def complete_execution(self, execution_id: int, current_state: str, context: dict) -> bool:
        return await self._update_execution(
            execution_id,
            only_running=True,
            status=ExecutionStatus.COMPLETED.value,
            current_state=current_state,
            context=to_jsonable(context),
            completed_at=utc_now(),
        )

    async def fail_execution(self, execution_id: int, error: str) -> bool:
        return await self._update_execution(
            execution_id,
            only_running=True,
            status=ExecutionStatus.FAILED.value,
            error=error,
            completed_at=utc_now(),
        )

    async def cancel_execution(self, execution_id: int) -> int:
        """Mark the execution cancelled and its open node rows skipped.

        Returns:
            Number of node rows marked skipped
        """
        async with self.session_factory() as session:
            await session.execute(
                update(WorkflowExecution)
                .where(WorkflowExecution.id == execution_id)
                .values(status=ExecutionStatus.CANCELLED.value, completed_at=utc_now())
            )
            skipped = await NodeExecutionService(session).mark_open_skipped(execution_id)
            await session.commit()
            return skipped

    async def _update_execution(self, execution_id: int, only_running: bool = False, **values: Any) -> bool:
        stmt = update(WorkflowExecution).where(WorkflowExecution.id == execution_id)
        if only_running:
            stmt = stmt.where(WorkflowExecution.status == ExecutionStatus.RUNNING.value)
        async with self.session_factory() as session:
            result = await session.execute(stmt.values(**values))
            await session.commit()
            return (result.rowcount or 0) > 0

    # ─── Nodes ─────────────────────────────────────────────

    async def start_node(self, execution_id: int, node_id: str, node_type: str, input: Any) -> int:
        """Insert a ``running`` node row and return its id."""
        async with self.session_factory() as session:
            node = NodeExecution(
                execution_id=execution_id,
                node_id=node_id,
                node_type=node_type,
                status=NodeStatus.RUNNING.value,
                input=to_jsonable(input),
                started_at=utc_now(),
            )
            session.add(node)
            await session.commit()
            return node.id

    async def finish_node(
        self,
        node_row_id: int,
        status: NodeStatus,
        duration_ms: int,
        output: Any = None,
        error: Optional[str] = None,
    ) -> bool:
        """Finalize a node row unless cancellation already skipped it."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(NodeExecution)
                .where(
                    NodeExecution.id == node_row_id,
                    NodeExecution.status == NodeStatus.RUNNING.value,
                )
                .values(
                    status=status.value,
                    output=to_jsonable(output),
                    error=error,
                    completed_at=utc_now(),
                    duration_ms=duration_ms,
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def record_node(
        self,
        execution_id: int,
        node_id: str,
        node_type: str,
        input: Any,
        output: Any,
        status: NodeStatus = NodeStatus.COMPLETED,
    ) -> int:
        """Insert an already-finished node row."""
        now = utc_now()
        async with self.session_factory() as session:
            node = NodeExecution(
                execution_id=execution_id,
                node_id=node_id,
                node_type=node_type,
                status=status.value,
                input=to_jsonable(input),
                output=to_jsonable(output),
                started_at=now,
                completed_at=now,
                duration_ms=0,
            )
            session.add(node)
            await session.commit()
            return node.id

    async def list_nodes(self, execution_id: int) -> Sequence[NodeExecution]:
        async with self.session_factory() as session:
            return await NodeExecutionService(session).list_for_execution(execution_id)
