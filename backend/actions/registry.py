"""
Action Registry: catalogue of every action a workflow state can invoke.

Preloaded from the static catalogue; modules may register more at
runtime. The registry is constructed explicitly and passed to whatever
needs it.
"""

from typing import Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from core.constants import ActionCategory
from actions.catalog import CATALOG

ParamType = Literal["string", "number", "boolean", "object", "array"]
HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]


class ActionParam(BaseModel):
    """One input or output of an action."""

    name: str
    type: ParamType = "string"
    description: Optional[str] = None
    required: bool = False
    example: Optional[Any] = None


class ActionDefinition(BaseModel):
    """Catalogue entry for an invocable action."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(min_length=1, description="Action id, e.g. maps.tiles.create")
    label: str = Field(description="Human-readable name")
    module: str = Field(description="Owning module, 'core' for built-ins")
    category: ActionCategory
    description: str = ""
    inputs: List[ActionParam] = Field(default_factory=list)
    outputs: List[ActionParam] = Field(default_factory=list)
    method: Optional[HttpMethod] = None
    route: Optional[str] = Field(default=None, description="Route template under /api, e.g. tiles/[id]")

    @property
    def is_routed(self) -> bool:
        return self.category == ActionCategory.API_CALL.value and bool(self.method and self.route)


class ActionRegistry:
    """Registry of action definitions keyed by id."""

    def __init__(self, definitions: Optional[Iterable[Union[ActionDefinition, Dict[str, Any]]]] = None):
        self._actions: Dict[str, ActionDefinition] = {}
        for definition in CATALOG if definitions is None else definitions:
            self.register(definition)

    def register(self, definition: Union[ActionDefinition, Dict[str, Any]]) -> ActionDefinition:
        """Register (or replace) an action definition."""
        if not isinstance(definition, ActionDefinition):
            definition = ActionDefinition.model_validate(definition)
        self._actions[definition.id] = definition
        return definition

    def get(self, action_id: str) -> Optional[ActionDefinition]:
        return self._actions.get(action_id)

    def list_all(self) -> List[ActionDefinition]:
        return list(self._actions.values())

    def by_module(self, module: str) -> List[ActionDefinition]:
        return [a for a in self._actions.values() if a.module == module]

    def by_category(self, category: Union[ActionCategory, str]) -> List[ActionDefinition]:
        category = ActionCategory(category).value
        return [a for a in self._actions.values() if a.category == category]

    def modules(self) -> List[str]:
        """Unique module names, sorted."""
        return sorted({a.module for a in self._actions.values()})

    def grouped(self) -> Dict[str, List[ActionDefinition]]:
        """Definitions grouped by module, in registration order."""
        groups: Dict[str, List[ActionDefinition]] = {}
        for action in self._actions.values():
            groups.setdefault(action.module, []).append(action)
        return groups

    def __contains__(self, action_id: str) -> bool:
        return action_id in self._actions

    def __len__(self) -> int:
        return len(self._actions)
