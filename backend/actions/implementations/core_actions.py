"""Built-in ``core.*`` actions.

These run inside the engine process. Only ``core.resolveConfig`` goes
through the execution strategy, as a routed call to the config
resolution endpoint.
"""

import asyncio
import math
import re
from typing import Any, Dict, List, Sequence, Tuple

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

from actions.base_action import ActionContext, ActionResult, BaseAction
from core.exceptions import ActionError
from core.utils import to_jsonable
from workflow.expressions import resolve_inputs, resolve_value, to_number
from workflow.strategies import ActionRoute

logger = structlog.get_logger(__name__)

DEFAULT_DELAY_MS = 1000
POSITIONAL_PARAM = re.compile(r"\$(\d+)")
RESOLVE_CONFIG_ROUTE = ActionRoute(route="module-configs/resolve", method="GET", module="workflows")


class DelayAction(BaseAction):
    """Sleep for ``ms`` milliseconds, capped by the caller's limit."""

    action_id = "core.delay"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        raw = input.get("ms")
        ms = to_number(DEFAULT_DELAY_MS if raw is None else raw)
        if math.isnan(ms) or ms < 0:
            ms = 0
        ms = min(ms, ctx.max_delay_ms)
        await asyncio.sleep(ms / 1000)
        return ActionResult(success=True, output={})


class EmitAction(BaseAction):
    """Publish an event on the event sink."""

    action_id = "core.emit"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        event = "" if input.get("event") is None else str(input["event"])
        if not event:
            raise ActionError("Event name is required")

        payload = input.get("payload") or {}
        if isinstance(payload, dict):
            payload = resolve_inputs(payload, ctx.context)

        if ctx.events is not None:
            await ctx.events.emit(event, payload)
        return ActionResult(success=True, output={"emitted": event})


class TransformAction(BaseAction):
    """Build a new object from a mapping of literals and ``$.`` paths."""

    action_id = "core.transform"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        mapping = input.get("mapping") or {}
        if not isinstance(mapping, dict):
            raise ActionError("Transform mapping must be an object")
        return ActionResult(success=True, output=resolve_inputs(mapping, ctx.context))


class LogAction(BaseAction):
    action_id = "core.log"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        data = input.get("data")
        logger.info(
            "Workflow log",
            execution_id=ctx.execution_id,
            node_id=ctx.node_id,
            message=input.get("message") or "",
            data=to_jsonable(data if data is not None else ctx.context),
        )
        return ActionResult(success=True, output={})


class SetVariableAction(BaseAction):
    """Bind a literal or a resolved value to a context key."""

    action_id = "core.setVariable"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        name = "" if input.get("name") is None else str(input["name"])
        # The value may itself resolve to another $. reference
        value = resolve_value(input.get("value"), ctx.context)
        updates = {name: value} if name else {}
        return ActionResult(
            success=True,
            output={"name": name, "value": value},
            context_updates=updates,
        )


class SqlAction(BaseAction):
    """Run a parameterized query with ``$1, $2`` placeholders."""

    action_id = "core.sql"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        query = "" if input.get("query") is None else str(input["query"])
        if not query:
            raise ActionError("SQL query is required")
        if ctx.sql is None:
            raise ActionError("No SQL executor configured")

        raw_params = input.get("params")
        params = (
            [resolve_value(p, ctx.context) for p in raw_params]
            if isinstance(raw_params, list)
            else []
        )
        rows, row_count = await ctx.sql.execute(query, params)
        return ActionResult(success=True, output={"rows": rows, "rowCount": row_count})


class ResolveConfigAction(BaseAction):
    """Resolve a module config value through the execution strategy."""

    action_id = "core.resolveConfig"

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        output = await ctx.strategy.execute_api_call(RESOLVE_CONFIG_ROUTE, input)
        return ActionResult(success=True, output=output)


def bind_positional(query: str, params: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """Rewrite ``$n`` placeholders as named binds.

    Raises:
        ActionError: If a placeholder has no matching parameter
    """
    bound: Dict[str, Any] = {}

    def _replace(match: "re.Match[str]") -> str:
        position = int(match.group(1))
        if position < 1 or position > len(params):
            raise ActionError(f"SQL placeholder ${position} has no parameter")
        name = f"p{position}"
        bound[name] = params[position - 1]
        return f":{name}"

    return POSITIONAL_PARAM.sub(_replace, query), bound


class SessionSqlExecutor:
    """Runs workflow SQL in its own short transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def execute(self, query: str, params: Sequence[Any]) -> Tuple[List[dict], int]:
        statement, bound = bind_positional(query, params)
        async with self.session_factory() as session:
            try:
                result = await session.execute(text(statement), bound)
                if result.returns_rows:
                    rows = [to_jsonable(dict(row._mapping)) for row in result]
                    row_count = len(rows)
                else:
                    rows = []
                    row_count = max(result.rowcount or 0, 0)
                await session.commit()
            except ActionError:
                raise
            except Exception as e:
                await session.rollback()
                raise ActionError(f"SQL query failed: {e}") from e
        return rows, row_count


CORE_ACTION_TYPES = {
    "core.delay": DelayAction,
    "core.emit": EmitAction,
    "core.transform": TransformAction,
    "core.log": LogAction,
    "core.setVariable": SetVariableAction,
    "core.sql": SqlAction,
    "core.resolveConfig": ResolveConfigAction,
}
