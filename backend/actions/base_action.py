"""
Base action interface for everything a workflow state can invoke.

Built-in ``core.*`` actions and routed module actions inherit from
BaseAction and implement execute().
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Protocol, Sequence

import structlog

from core.exceptions import DefinitionError
from workflow.events import EventSink
from workflow.strategies import ExecutionStrategy

logger = structlog.get_logger(__name__)


class SqlExecutor(Protocol):
    """Runs a parameterized statement and returns ``(rows, row_count)``."""

    async def execute(self, query: str, params: Sequence[Any]) -> "tuple[list[dict], int]":
        ...


class ActionContext:
    """Everything an action may touch while it runs."""

    def __init__(
        self,
        execution_id: Optional[int],
        node_id: str,
        context: Dict[str, Any],
        strategy: ExecutionStrategy,
        events: Optional[EventSink] = None,
        sql: Optional[SqlExecutor] = None,
        max_delay_ms: int = 55000,
    ):
        self.execution_id = execution_id
        self.node_id = node_id
        self.context = context
        self.strategy = strategy
        self.events = events
        self.sql = sql
        self.max_delay_ms = max_delay_ms


class ActionResult:
    """Standardized result from an action."""

    def __init__(
        self,
        success: bool,
        output: Any = None,
        error: Optional[str] = None,
        context_updates: Optional[Dict[str, Any]] = None,
        duration_ms: float = 0,
    ):
        self.success = success
        self.output = {} if output is None else output
        self.error = error
        self.context_updates = context_updates or {}
        self.duration_ms = duration_ms


class BaseAction(ABC):
    """
    Abstract base class for invocable actions.

    Subclasses must implement:
    - execute(input, ctx) -> ActionResult
    - action_id (class property)
    """

    action_id: str = "base"

    @abstractmethod
    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        """
        Execute the action.

        Args:
            input: Input mapping already resolved against the context
            ctx: Execution context of the invoking state

        Returns:
            ActionResult with output or error
        """

    async def run(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        """
        Run the action with timing and error handling.

        This is the entry point called by the interpreter. Definition
        errors propagate; every other failure becomes a failed result.
        """
        start = time.monotonic()
        try:
            result = await self.execute(input, ctx)
            result.duration_ms = (time.monotonic() - start) * 1000
            logger.debug(
                "Action completed",
                action=self.action_id,
                execution_id=ctx.execution_id,
                node_id=ctx.node_id,
                duration_ms=round(result.duration_ms, 2),
            )
            return result

        except DefinitionError:
            raise

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            logger.warning(
                "Action failed",
                action=self.action_id,
                execution_id=ctx.execution_id,
                node_id=ctx.node_id,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            return ActionResult(success=False, error=str(e), duration_ms=duration_ms)
