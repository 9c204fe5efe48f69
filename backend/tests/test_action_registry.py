"""Tests for the action registry and dispatcher."""

import pytest

from actions.dispatcher import ActionDispatcher
from actions.implementations.core_actions import SetVariableAction, SqlAction
from actions.implementations.remote_action import RemoteAction
from actions.registry import ActionRegistry
from core.exceptions import DefinitionError


@pytest.mark.unit
class TestActionRegistry:
    """Test catalogue lookups."""

    def test_catalog_is_preloaded(self, registry):
        assert "core.setVariable" in registry
        assert "sessions.getActive" in registry
        assert len(registry) == len(registry.list_all())

    def test_routed_entry(self, registry):
        action = registry.get("sessions.getActive")
        assert action.module == "sessions"
        assert action.category == "api-call"
        assert action.method == "GET"
        assert action.route == "sessions/active"
        assert action.is_routed

    def test_builtins_are_not_routed(self, registry):
        assert not registry.get("core.delay").is_routed
        assert registry.get("core.sql").category == "data"

    def test_by_module_and_category(self, registry):
        assert {a.module for a in registry.by_module("player-map-position")} == {"player-map-position"}
        loops = {a.id for a in registry.by_category("loop")}
        assert loops == {"core.forEach", "core.whileLoop"}

    def test_unknown_category(self, registry):
        with pytest.raises(ValueError):
            registry.by_category("teleport")

    def test_modules_and_grouping(self, registry):
        modules = registry.modules()
        assert modules == sorted(modules)
        assert {"core", "maps", "players", "sessions", "player-map-position"} <= set(modules)
        grouped = registry.grouped()
        assert set(grouped) == set(modules)
        assert all(a.module == module for module, actions in grouped.items() for a in actions)

    def test_register_dict(self):
        registry = ActionRegistry(definitions=[])
        registry.register({
            "id": "quests.complete",
            "label": "Complete Quest",
            "module": "quests",
            "category": "api-call",
            "method": "POST",
            "route": "quests/[id]/complete",
            "inputs": [{"name": "id", "type": "number", "required": True}],
        })
        action = registry.get("quests.complete")
        assert action.is_routed
        assert action.inputs[0].required
        assert registry.modules() == ["quests"]


@pytest.mark.unit
class TestActionDispatcher:
    """Test resolving invoke.src to handlers."""

    def test_builtin_handlers(self, dispatcher):
        assert isinstance(dispatcher.resolve("core.setVariable"), SetVariableAction)
        assert isinstance(dispatcher.resolve("core.sql"), SqlAction)

    def test_routed_actions_use_remote_handler(self, dispatcher):
        handler = dispatcher.resolve("positions.assignments.create")
        assert isinstance(handler, RemoteAction)
        assert handler.route.route == "map-assignments"
        assert handler.route.method == "POST"
        assert dispatcher.resolve("positions.assignments.create") is handler

    def test_unknown_action(self, dispatcher):
        with pytest.raises(DefinitionError, match="Unknown node type: teleport.now"):
            dispatcher.resolve("teleport.now")

    def test_unrouted_api_call_is_unknown(self):
        registry = ActionRegistry(definitions=[
            {"id": "quests.draft", "label": "Draft", "module": "quests", "category": "api-call"},
        ])
        with pytest.raises(DefinitionError):
            ActionDispatcher(registry).resolve("quests.draft")

    def test_node_type(self, dispatcher):
        assert dispatcher.node_type("sessions.create") == "api-call"
        assert dispatcher.node_type("core.emit") == "event-emit"
        assert dispatcher.node_type("not.catalogued") == "api-call"
