"""
State machine interpreter.

Walks a parsed workflow definition one state at a time, threading a
context dict through every step:

- ``invoke`` states run an action and merge its output into the context,
  both flat and under ``<state>_output``
- ``loop`` states run a restricted body sub-machine per iteration
  (``forEach`` over a collection, optionally in parallel batches, or
  ``while`` a guard holds)
- ``always`` states take the first transition whose guard passes
- ``on`` states take the first matching transition of their first event

Progress is checkpointed to the execution row before every step.
"""

import asyncio
import copy
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from actions.base_action import ActionContext, ActionResult, SqlExecutor
from actions.dispatcher import ActionDispatcher
from core.constants import GUARD_NODE_TYPE, LOOP_NODE_TYPES, EngineEvent, LoopType, NodeStatus
from core.exceptions import ActionError, DefinitionError, ExecutionCancelled, IterationLimitError
from workflow.definition import (
    KIND_FINAL,
    KIND_INVOKE,
    KIND_LOOP,
    KIND_ON,
    LoopDefinition,
    StateDefinition,
    Transition,
    WorkflowDefinition,
)
from workflow.events import EventSink
from workflow.expressions import evaluate_condition, fingerprint, resolve_inputs, resolve_value
from workflow.store import ExecutionStore
from workflow.strategies import ExecutionStrategy

logger = structlog.get_logger(__name__)

Context = Dict[str, Any]
StepResult = Tuple[Context, Optional[str]]


@dataclass
class EngineLimits:
    """Safety bounds applied to every run."""

    max_machine_iterations: int = 100
    max_body_iterations: int = 50
    default_loop_max_iterations: int = 100
    default_loop_timeout_ms: int = 50000
    max_delay_ms: int = 55000
    max_body_delay_ms: int = 10000

    @classmethod
    def from_settings(cls, settings) -> "EngineLimits":
        return cls(
            max_machine_iterations=settings.MAX_MACHINE_ITERATIONS,
            max_body_iterations=settings.MAX_BODY_ITERATIONS,
            default_loop_max_iterations=settings.DEFAULT_LOOP_MAX_ITERATIONS,
            default_loop_timeout_ms=settings.DEFAULT_LOOP_TIMEOUT_MS,
            max_delay_ms=settings.MAX_DELAY_MS,
            max_body_delay_ms=settings.MAX_BODY_DELAY_MS,
        )


def merge_output(state_name: str, context: Context, output: Any, updates: Optional[Context] = None) -> Context:
    """Merge an action's output into the context.

    The output is stored under ``<state>_output`` and its keys are spread
    over the context; later states shadow earlier keys. List outputs
    spread as index keys (``"0"``, ``"1"``, ...).
    """
    merged = {**context, **(updates or {})}
    merged[f"{state_name}_output"] = output
    if isinstance(output, dict):
        merged.update(output)
    elif isinstance(output, list):
        merged.update({str(i): value for i, value in enumerate(output)})
    return merged


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class StateMachineInterpreter:
    """Runs one execution of a workflow definition."""

    def __init__(
        self,
        definition: WorkflowDefinition,
        execution_id: int,
        store: ExecutionStore,
        dispatcher: ActionDispatcher,
        strategy: ExecutionStrategy,
        events: Optional[EventSink] = None,
        sql: Optional[SqlExecutor] = None,
        limits: Optional[EngineLimits] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ):
        self.definition = definition
        self.execution_id = execution_id
        self.store = store
        self.dispatcher = dispatcher
        self.strategy = strategy
        self.events = events
        self.sql = sql
        self.limits = limits or EngineLimits()
        self.is_cancelled = is_cancelled or (lambda: False)
        self.log = logger.bind(execution_id=execution_id)

    # ─── Main loop ─────────────────────────────────────────

    async def run(self, context: Context) -> Context:
        """Drive the machine from its initial state to a final state.

        Returns:
            The final context

        Raises:
            DefinitionError: For unknown states or actions, unmatched
                transitions, stuck states, detected loops and step caps
            ActionError: For action failures without an ``onError`` route
            ExecutionCancelled: If the execution was cancelled mid-run
        """
        context = dict(context)
        state_name = self.definition.initial
        seen: set = set()
        steps = 0

        while True:
            steps += 1
            if steps > self.limits.max_machine_iterations:
                raise IterationLimitError(
                    f"Workflow exceeded maximum iterations ({self.limits.max_machine_iterations})"
                )
            self._check_cancelled()

            state = self.definition.states.get(state_name)
            if state is None:
                raise DefinitionError(f'State "{state_name}" not found in workflow definition')

            await self.store.checkpoint(self.execution_id, state_name, context)

            if state.kind == KIND_FINAL:
                await self.store.complete_execution(self.execution_id, state_name, context)
                self.log.info("Workflow completed", state=state_name, steps=steps)
                await self._emit(
                    EngineEvent.EXECUTION_COMPLETED,
                    {"executionId": self.execution_id, "context": context},
                )
                return context

            # Heuristic: the same state with an identical context cannot make progress
            key = fingerprint(state_name, context)
            if key in seen:
                raise DefinitionError(f'Infinite loop detected at state "{state_name}"')
            seen.add(key)

            next_state: Optional[str] = None
            if state.kind == KIND_INVOKE:
                context, next_state = await self._run_invoke(state_name, state, context)
            elif state.kind == KIND_LOOP:
                context, next_state = await self._run_loop(state_name, state, context)

            if next_state is None:
                self._run_entry_actions(state_name, state)
                next_state = await self._next_transition(state_name, state, context)

            self.log.debug("Transition", source=state_name, target=next_state)
            state_name = next_state

    def _check_cancelled(self) -> None:
        if self.is_cancelled():
            raise ExecutionCancelled(self.execution_id)

    async def _emit(self, event: EngineEvent, payload: dict) -> None:
        if self.events is not None:
            await self.events.emit(event.value, payload)

    def _action_context(self, node_id: str, context: Context, in_body: bool = False) -> ActionContext:
        return ActionContext(
            execution_id=self.execution_id,
            node_id=node_id,
            context=context,
            strategy=self.strategy,
            events=self.events,
            sql=self.sql,
            max_delay_ms=self.limits.max_body_delay_ms if in_body else self.limits.max_delay_ms,
        )

    async def _call_action(self, state_name: str, state: StateDefinition, context: Context, in_body: bool = False) -> Tuple[Context, ActionResult]:
        invoke = state.invoke
        resolved = resolve_inputs(invoke.input, context) if invoke.input is not None else dict(context)
        handler = self.dispatcher.resolve(invoke.src)
        result = await handler.run(resolved, self._action_context(state_name, context, in_body))
        return resolved, result

    # ─── Invoke ────────────────────────────────────────────

    async def _run_invoke(self, state_name: str, state: StateDefinition, context: Context) -> StepResult:
        invoke = state.invoke
        node_type = self.dispatcher.node_type(invoke.src)
        node_input = resolve_inputs(invoke.input, context) if invoke.input is not None else dict(context)

        row_id = await self.store.start_node(self.execution_id, state_name, node_type, node_input)
        await self._emit(
            EngineEvent.NODE_STARTED,
            {"executionId": self.execution_id, "nodeId": state_name, "nodeType": node_type},
        )
        started = time.monotonic()

        try:
            _, result = await self._call_action(state_name, state, context)
        except DefinitionError as e:
            await self._fail_node(row_id, state_name, started, e.message)
            raise

        if not result.success:
            error = result.error or "Action failed"
            await self._fail_node(row_id, state_name, started, error)
            if invoke.on_error is not None:
                self.log.info("Action failed, following onError", state=state_name, error=error)
                return {**context, f"{state_name}_error": error}, invoke.on_error.target
            raise ActionError(error)

        duration_ms = _elapsed_ms(started)
        context = merge_output(state_name, context, result.output, result.context_updates)
        await self.store.finish_node(row_id, NodeStatus.COMPLETED, duration_ms, output=result.output)
        await self._emit(
            EngineEvent.NODE_COMPLETED,
            {
                "executionId": self.execution_id,
                "nodeId": state_name,
                "output": result.output,
                "durationMs": duration_ms,
            },
        )
        return context, invoke.on_done.target if invoke.on_done is not None else None

    async def _fail_node(self, row_id: int, state_name: str, started: float, error: str) -> None:
        await self.store.finish_node(row_id, NodeStatus.FAILED, _elapsed_ms(started), error=error)
        await self._emit(
            EngineEvent.NODE_FAILED,
            {"executionId": self.execution_id, "nodeId": state_name, "error": error},
        )

    # ─── Loops ─────────────────────────────────────────────

    async def _run_loop(self, state_name: str, state: StateDefinition, context: Context) -> StepResult:
        loop = state.loop
        max_iterations = (
            loop.max_iterations if loop.max_iterations is not None
            else self.limits.default_loop_max_iterations
        )
        timeout_ms = (
            loop.timeout_ms if loop.timeout_ms is not None
            else self.limits.default_loop_timeout_ms
        )
        deadline = time.monotonic() + timeout_ms / 1000
        node_type = LOOP_NODE_TYPES[loop.type.value]

        on_done = loop.on_done or (state.invoke.on_done if state.invoke else None)
        on_error = loop.on_error or (state.invoke.on_error if state.invoke else None)

        row_id = await self.store.start_node(
            self.execution_id,
            state_name,
            node_type,
            {"loopType": loop.type.value, "collection": loop.collection, "maxIterations": max_iterations},
        )
        await self._emit(
            EngineEvent.NODE_STARTED,
            {"executionId": self.execution_id, "nodeId": state_name, "nodeType": node_type},
        )
        started = time.monotonic()

        try:
            if loop.type == LoopType.FOR_EACH:
                context, output, loop_error = await self._for_each(loop, context, max_iterations, deadline)
            else:
                context, output, loop_error = await self._while(loop, context, max_iterations, deadline)
        except (DefinitionError, ExecutionCancelled) as e:
            await self._fail_node(row_id, state_name, started, e.message)
            raise
        except ActionError as e:
            await self._fail_node(row_id, state_name, started, e.message)
            if on_error is not None:
                return {**context, f"{state_name}_error": e.message}, on_error.target
            raise

        duration_ms = _elapsed_ms(started)
        context = {**context, **output, f"{state_name}_output": output}

        if loop_error:
            self.log.warning("Loop stopped early", state=state_name, error=loop_error)
            await self.store.finish_node(row_id, NodeStatus.FAILED, duration_ms, output=output, error=loop_error)
            await self._emit(
                EngineEvent.NODE_FAILED,
                {"executionId": self.execution_id, "nodeId": state_name, "error": loop_error},
            )
            if on_error is not None:
                return {**context, f"{state_name}_error": loop_error}, on_error.target
        else:
            await self.store.finish_node(row_id, NodeStatus.COMPLETED, duration_ms, output=output)
            await self._emit(
                EngineEvent.NODE_COMPLETED,
                {
                    "executionId": self.execution_id,
                    "nodeId": state_name,
                    "output": output,
                    "durationMs": duration_ms,
                },
            )

        return context, on_done.target if on_done is not None else None

    async def _for_each(
        self,
        loop: LoopDefinition,
        context: Context,
        max_iterations: int,
        deadline: float,
    ) -> Tuple[Context, Context, Optional[str]]:
        items = resolve_value(loop.collection, context)
        if not isinstance(items, list):
            raise ActionError(f'ForEach: collection "{loop.collection}" did not resolve to an array')

        results: List[Any] = []
        count = 0
        loop_error: Optional[str] = None
        batch_size = loop.parallel_batch_size
        batches: List[int] = []

        if batch_size > 0:
            for batch_start in range(0, len(items), batch_size):
                if count >= max_iterations:
                    break
                if time.monotonic() >= deadline:
                    loop_error = f"ForEach: timeout after {count} iterations"
                    break
                self._check_cancelled()

                batch = items[batch_start:batch_start + batch_size][:max_iterations - count]
                runs = []
                for offset, item in enumerate(batch):
                    iteration = copy.deepcopy(context)
                    iteration[loop.item_variable] = item
                    iteration[loop.index_variable] = batch_start + offset
                    runs.append(self._iteration(loop, iteration, item))

                outcomes = await asyncio.gather(*runs, return_exceptions=True)
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
                results.extend(outcomes)
                count += len(batch)
                batches.append(len(batch))
        else:
            for index, item in enumerate(items):
                if count >= max_iterations:
                    break
                if time.monotonic() >= deadline:
                    loop_error = f"ForEach: timeout after {count} iterations"
                    break
                self._check_cancelled()

                context = {**context, loop.item_variable: item, loop.index_variable: index}
                if loop.has_body:
                    context = await self._run_body(loop, dict(context))
                    results.append(context)
                else:
                    results.append(item)
                count += 1

        if loop_error is None and count < len(items):
            loop_error = f"ForEach: reached maxIterations ({max_iterations}) after {count} of {len(items)} items"

        output: Context = {"results": results, "iterationCount": count}
        if batch_size > 0:
            output["batches"] = batches
        return context, output, loop_error

    async def _iteration(self, loop: LoopDefinition, context: Context, item: Any) -> Any:
        if loop.has_body:
            return await self._run_body(loop, context)
        return item

    async def _while(
        self,
        loop: LoopDefinition,
        context: Context,
        max_iterations: int,
        deadline: float,
    ) -> Tuple[Context, Context, Optional[str]]:
        count = 0
        loop_error: Optional[str] = None

        while True:
            if time.monotonic() >= deadline:
                loop_error = f"While: timeout after {count} iterations"
                break
            if not evaluate_condition(loop.condition.params, context):
                break
            if count >= max_iterations:
                loop_error = f"While: reached maxIterations ({max_iterations})"
                break
            self._check_cancelled()

            if loop.has_body:
                body_context = await self._run_body(loop, dict(context))
                context = {**context, **body_context}
            count += 1

        return context, {"iterationCount": count}, loop_error

    # ─── Loop body ─────────────────────────────────────────

    async def _run_body(self, loop: LoopDefinition, context: Context) -> Context:
        """Run the loop body sub-machine and return its final context.

        Bodies support ``invoke`` and ``always`` states only. A state with
        no applicable transition ends the body.
        """
        state_name = loop.body_initial
        steps = 0

        while True:
            state = loop.body_states.get(state_name)
            if state is None:
                raise DefinitionError(f'Loop body state "{state_name}" not found')
            if state.kind == KIND_FINAL:
                return context

            steps += 1
            if steps > self.limits.max_body_iterations:
                raise IterationLimitError(
                    f"Loop body exceeded maximum iterations ({self.limits.max_body_iterations})"
                )
            if state.kind in (KIND_LOOP, KIND_ON):
                raise DefinitionError(
                    f'Loop body state "{state_name}" cannot be a {state.kind} state'
                )

            if state.kind == KIND_INVOKE:
                context, next_state = await self._run_body_invoke(state_name, state, context)
                if next_state is not None:
                    state_name = next_state
                    continue

            target = self._match_transition(state.always or [], context)
            if target is None:
                return context
            state_name = target.target

    async def _run_body_invoke(self, state_name: str, state: StateDefinition, context: Context) -> StepResult:
        invoke = state.invoke
        _, result = await self._call_action(state_name, state, context, in_body=True)
        if not result.success:
            error = result.error or "Action failed"
            if invoke.on_error is not None:
                return {**context, f"{state_name}_error": error}, invoke.on_error.target
            raise ActionError(error)

        context = merge_output(state_name, context, result.output, result.context_updates)
        return context, invoke.on_done.target if invoke.on_done is not None else None

    # ─── Transitions ───────────────────────────────────────

    def _run_entry_actions(self, state_name: str, state: StateDefinition) -> None:
        for action in state.entry or []:
            if action.type == "core.log":
                self.log.info("Workflow entry action", state=state_name, params=action.params)

    @staticmethod
    def _match_transition(transitions: List[Transition], context: Context) -> Optional[Transition]:
        for transition in transitions:
            if transition.guard is None or evaluate_condition(transition.guard.params, context):
                return transition
        return None

    async def _next_transition(self, state_name: str, state: StateDefinition, context: Context) -> str:
        if state.always:
            transition = self._match_transition(state.always, context)
            if transition is not None:
                if transition.guard is not None:
                    await self.store.record_node(
                        self.execution_id,
                        f"{state_name}_guard",
                        GUARD_NODE_TYPE,
                        transition.guard.params,
                        {"result": True},
                    )
                return transition.target

        if state.on:
            event, transitions = next(iter(state.on.items()))
            transition = self._match_transition(transitions, context)
            if transition is None:
                raise DefinitionError(
                    f'No matching transition from state "{state_name}" for event "{event}"'
                )
            return transition.target

        raise DefinitionError(f'Workflow stuck at state "{state_name}": no transitions defined')
