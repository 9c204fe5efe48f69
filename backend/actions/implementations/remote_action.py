"""Routed module actions, performed through the execution strategy."""

from typing import Any, Dict

from actions.base_action import ActionContext, ActionResult, BaseAction
from actions.registry import ActionDefinition
from workflow.strategies import ActionRoute


class RemoteAction(BaseAction):
    """Calls the route of an ``api-call`` catalogue entry."""

    def __init__(self, definition: ActionDefinition):
        self.definition = definition
        self.action_id = definition.id
        self.route = ActionRoute(
            route=definition.route or "",
            method=definition.method or "GET",
            module=definition.module,
        )

    async def execute(self, input: Dict[str, Any], ctx: ActionContext) -> ActionResult:
        output = await ctx.strategy.execute_api_call(self.route, input)
        return ActionResult(success=True, output=output)
