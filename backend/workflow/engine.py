"""Workflow Engine: public entry point for running workflows.

Starts runs (creating the execution row and driving the interpreter),
cancels running executions and reports execution status. Everything
the engine talks to is injected: the execution store, the action
dispatcher, the execution strategy and the event sink.

Workflow Definition Schema (stored in Workflow.definition JSON):
{
    "id": "session-resume",
    "initial": "checkActiveSession",
    "payloadSchema": [{ "name": "playerId", "type": "number", "required": true }],
    "states": {
        "checkActiveSession": {
            "invoke": {
                "src": "sessions.getActive",
                "input": { "playerId": "$.playerId" },
                "onDone": "checkHasSession"
            }
        },
        "checkHasSession": {
            "always": [
                { "guard": { "params": { "key": "data.length", "operator": ">", "value": 0 } },
                  "target": "done" },
                { "target": "noActiveSession" }
            ]
        },
        ...
        "done": { "type": "final" }
    }
}
"""

import asyncio
import logging
from typing import Any, Optional

from actions.base_action import SqlExecutor
from actions.dispatcher import ActionDispatcher
from core.constants import TERMINAL_EXECUTION_STATUSES, EngineEvent
from core.exceptions import ConflictError, ExecutionCancelled, NotFoundError, ValidationError
from workflow.definition import apply_payload_schema, parse_definition
from workflow.events import EventSink
from workflow.interpreter import EngineLimits, StateMachineInterpreter
from workflow.store import ExecutionStore
from workflow.strategies import ExecutionStrategy

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs, cancels and reports on workflow executions.

    Cancellation is cooperative: ``cancel_workflow`` marks the rows and
    raises a flag the interpreter checks before every step, so a run
    stops at its next step boundary. In-flight action calls are not
    interrupted.
    """

    def __init__(
        self,
        store: ExecutionStore,
        dispatcher: ActionDispatcher,
        strategy: ExecutionStrategy,
        events: Optional[EventSink] = None,
        sql: Optional[SqlExecutor] = None,
        limits: Optional[EngineLimits] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.strategy = strategy
        self.events = events
        self.sql = sql
        self.limits = limits or EngineLimits()
        self._cancel_flags: dict[int, asyncio.Event] = {}
        self._background: set[asyncio.Task] = set()

    def set_strategy(self, strategy: ExecutionStrategy) -> None:
        """Swap the execution strategy for subsequent runs."""
        self.strategy = strategy

    async def _emit(self, event: EngineEvent, payload: dict) -> None:
        if self.events is not None:
            await self.events.emit(event.value, payload)

    # ─── Execute ───────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: int,
        payload: Optional[dict] = None,
        trigger_event: Optional[str] = None,
        wait: bool = True,
    ) -> int:
        """Start a run of a workflow.

        Args:
            workflow_id: Workflow to run
            payload: Trigger payload, becomes the initial context
            trigger_event: Event that triggered the run, if any
            wait: Return only after the run has finished. With ``False``
                the run continues as a background task.

        Returns:
            The execution id

        Raises:
            NotFoundError: If the workflow does not exist
            ValidationError: If it is disabled, its definition is malformed
                or the payload does not match its payload schema
        """
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        if not workflow.enabled:
            raise ValidationError(f"Workflow {workflow_id} is disabled")

        definition = parse_definition(workflow.definition)
        payload = apply_payload_schema(definition, payload or {})
        context = {**definition.context, **payload}

        execution = await self.store.create_execution(
            workflow_id,
            payload=payload,
            context=context,
            current_state=definition.initial,
            trigger_event=trigger_event,
        )
        execution_id = execution.id
        cancel_flag = asyncio.Event()
        self._cancel_flags[execution_id] = cancel_flag

        logger.info(f"Execution {execution_id} started for workflow {workflow_id} ({workflow.name})")
        await self._emit(
            EngineEvent.EXECUTION_STARTED,
            {"executionId": execution_id, "workflowId": workflow_id, "workflowName": workflow.name},
        )

        interpreter = StateMachineInterpreter(
            definition,
            execution_id,
            store=self.store,
            dispatcher=self.dispatcher,
            strategy=self.strategy,
            events=self.events,
            sql=self.sql,
            limits=self.limits,
            is_cancelled=cancel_flag.is_set,
        )

        if wait:
            await self._drive(interpreter, context)
        else:
            task = asyncio.create_task(self._drive(interpreter, context))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return execution_id

    async def _drive(self, interpreter: StateMachineInterpreter, context: dict) -> None:
        execution_id = interpreter.execution_id
        try:
            await interpreter.run(context)
        except ExecutionCancelled:
            logger.info(f"Execution {execution_id} stopped after cancellation")
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            logger.error(f"Execution {execution_id} failed: {message}")
            if await self.store.fail_execution(execution_id, message):
                await self._emit(
                    EngineEvent.EXECUTION_FAILED,
                    {"executionId": execution_id, "error": message},
                )
        finally:
            self._cancel_flags.pop(execution_id, None)

    async def wait_for_background(self) -> None:
        """Wait until every background run has finished."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ─── Cancel ────────────────────────────────────────────

    async def cancel_workflow(self, execution_id: int) -> None:
        """Cancel an execution.

        Raises:
            NotFoundError: If the execution does not exist
            ConflictError: If it already reached a terminal status
        """
        execution = await self.store.get_execution(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution {execution_id} not found")
        if execution.status in TERMINAL_EXECUTION_STATUSES:
            raise ConflictError(f"Execution {execution_id} is already {execution.status}")

        skipped = await self.store.cancel_execution(execution_id)
        flag = self._cancel_flags.get(execution_id)
        if flag is not None:
            flag.set()

        logger.info(f"Execution {execution_id} cancelled ({skipped} node(s) skipped)")
        await self._emit(
            EngineEvent.EXECUTION_CANCELLED,
            {"executionId": execution_id, "skippedNodes": skipped},
        )

    def is_running(self, execution_id: int) -> bool:
        """Whether a run of ``execution_id`` is in progress in this process."""
        return execution_id in self._cancel_flags

    # ─── Status ────────────────────────────────────────────

    async def get_execution_status(self, execution_id: int) -> dict[str, Any]:
        """Return the execution row together with all of its node rows.

        Raises:
            NotFoundError: If the execution does not exist
        """
        execution = await self.store.get_execution(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution {execution_id} not found")
        nodes = await self.store.list_nodes(execution_id)
        return {"execution": execution, "nodes": list(nodes)}
