"""Tests for module config storage and resolution."""

import pytest

from core.exceptions import ValidationError
from services.config_service import DEFAULT_CONFIG_SCHEMA, ModuleConfigService


@pytest.mark.integration
class TestModuleConfigUpsert:

    async def test_create_then_replace(self, db_session):
        service = ModuleConfigService(db_session)

        created = await service.upsert("maps", "DEFAULT_SPAWN_RADIUS", 2, description="Spawn radius")
        replaced = await service.upsert("maps", "DEFAULT_SPAWN_RADIUS", 4)

        assert replaced.id == created.id
        assert replaced.value == 4
        assert replaced.description == "Spawn radius"

        _, total = await service.list_configs(module_name="maps")
        assert total == 1

    async def test_module_scope_ignores_scope_id(self, db_session):
        config = await ModuleConfigService(db_session).upsert(
            "sessions", "SESSION_TTL_SECONDS", 600, scope="module", scope_id="7",
        )
        assert config.scope_id is None

    async def test_instance_scope_requires_scope_id(self, db_session):
        with pytest.raises(ValidationError, match="scopeId"):
            await ModuleConfigService(db_session).upsert("maps", "START_CELL_POSITION", {}, scope="instance")

    async def test_invalid_scope(self, db_session):
        with pytest.raises(ValidationError, match="Invalid config scope"):
            await ModuleConfigService(db_session).upsert("maps", "X", 1, scope="global")

    async def test_instance_rows_are_separate(self, db_session):
        service = ModuleConfigService(db_session)
        await service.upsert("maps", "START_CELL_POSITION", {"x": 0, "y": 0})
        await service.upsert("maps", "START_CELL_POSITION", {"x": 16, "y": 16}, scope="instance", scope_id="1")
        await service.upsert("maps", "START_CELL_POSITION", {"x": 3, "y": 3}, scope="instance", scope_id="2")

        rows, total = await service.list_configs(module_name="maps", scope="instance")
        assert total == 2
        assert {row.scope_id for row in rows} == {"1", "2"}


@pytest.mark.integration
class TestModuleConfigResolve:
    """Resolution falls through instance, module, schema default, null."""

    @pytest.fixture
    async def service(self, db_session):
        service = ModuleConfigService(db_session)
        await service.upsert("maps", "START_CELL_POSITION", {"x": 0, "y": 0})
        await service.upsert("maps", "START_CELL_POSITION", {"x": 16, "y": 16}, scope="instance", scope_id="1")
        return service

    async def test_instance_override_wins(self, service):
        resolved = await service.resolve("maps", "START_CELL_POSITION", scope_id=1)
        assert resolved == {
            "key": "START_CELL_POSITION",
            "value": {"x": 16, "y": 16},
            "scope": "instance",
            "scopeId": "1",
            "source": "instance",
        }

    async def test_falls_back_to_module_value(self, service):
        resolved = await service.resolve("maps", "START_CELL_POSITION", scope_id="2")
        assert resolved["value"] == {"x": 0, "y": 0}
        assert resolved["source"] == "module"
        assert resolved["scope"] == "module"
        assert resolved["scopeId"] is None

    async def test_no_scope_id_uses_module_value(self, service):
        resolved = await service.resolve("maps", "START_CELL_POSITION")
        assert resolved["source"] == "module"

    async def test_schema_default(self, service):
        resolved = await service.resolve("maps", "MAX_DISCOVERY_CHUNKS", scope_id="1")
        assert resolved["value"] == DEFAULT_CONFIG_SCHEMA["maps"]["MAX_DISCOVERY_CHUNKS"]
        assert resolved["source"] == "schema"
        assert resolved["scope"] is None

    async def test_unknown_key_resolves_to_null(self, service):
        resolved = await service.resolve("maps", "NOT_A_KEY")
        assert resolved == {
            "key": "NOT_A_KEY",
            "value": None,
            "scope": None,
            "scopeId": None,
            "source": "default",
        }

    async def test_custom_schema_defaults(self, db_session):
        service = ModuleConfigService(db_session, schema_defaults={"chat": {"MAX_LENGTH": 200}})
        assert (await service.resolve("chat", "MAX_LENGTH"))["value"] == 200
        assert (await service.resolve("maps", "MAX_DISCOVERY_CHUNKS"))["source"] == "default"
