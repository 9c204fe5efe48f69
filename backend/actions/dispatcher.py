"""Maps action ids to the handler that performs them."""

from typing import Dict, Type

from actions.base_action import BaseAction
from actions.implementations.core_actions import CORE_ACTION_TYPES
from actions.implementations.remote_action import RemoteAction
from actions.registry import ActionRegistry
from core.constants import ActionCategory
from core.exceptions import DefinitionError


class ActionDispatcher:
    """Resolves ``invoke.src`` to a handler instance.

    Built-in ``core.*`` ids have dedicated handlers; any routed
    ``api-call`` registry entry is served by ``RemoteAction``.
    """

    def __init__(self, registry: ActionRegistry):
        self.registry = registry
        self._builtin: Dict[str, Type[BaseAction]] = dict(CORE_ACTION_TYPES)
        self._cache: Dict[str, BaseAction] = {}

    def resolve(self, action_id: str) -> BaseAction:
        """
        Raises:
            DefinitionError: If no handler can perform ``action_id``
        """
        if action_id in self._cache:
            return self._cache[action_id]

        if action_id in self._builtin:
            handler: BaseAction = self._builtin[action_id]()
        else:
            definition = self.registry.get(action_id)
            if definition is None or not definition.is_routed:
                raise DefinitionError(f"Unknown node type: {action_id}")
            handler = RemoteAction(definition)

        self._cache[action_id] = handler
        return handler

    def node_type(self, action_id: str) -> str:
        """Category recorded on node rows for ``action_id``."""
        definition = self.registry.get(action_id)
        return definition.category if definition else ActionCategory.API_CALL.value
