"""Module configuration service.

Values live per module, optionally overridden per instance (``scope_id``).
Resolution falls through instance → module → registered default.
"""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ConfigScope, ConfigSource
from core.exceptions import ValidationError
from db.models.module_config import ModuleConfig
from services.base import BaseService

logger = logging.getLogger(__name__)

# Defaults modules register for their config keys.
DEFAULT_CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "maps": {
        "START_CELL_POSITION": {"x": 0, "y": 0},
        "MAX_DISCOVERY_CHUNKS": 10000,
        "DEFAULT_SPAWN_RADIUS": 2,
    },
    "sessions": {
        "SESSION_TTL_SECONDS": 300,
        "SESSION_WARNING_SECONDS": 240,
    },
}


class ModuleConfigService(BaseService[ModuleConfig]):
    """Service for module config values and their resolution."""

    def __init__(
        self,
        db: AsyncSession,
        schema_defaults: Optional[dict[str, dict[str, Any]]] = None,
    ):
        super().__init__(ModuleConfig, db)
        self.schema_defaults = DEFAULT_CONFIG_SCHEMA if schema_defaults is None else schema_defaults

    async def list_configs(
        self,
        module_name: Optional[str] = None,
        scope: Optional[str] = None,
        scope_id: Optional[str] = None,
        key: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> tuple[Sequence[ModuleConfig], int]:
        return await self.list(
            offset=offset,
            limit=limit,
            order_by="id",
            order_desc=False,
            filters={
                "module_name": module_name,
                "scope": scope,
                "scope_id": scope_id,
                "key": key,
            },
        )

    async def find(
        self,
        module_name: str,
        key: str,
        scope: str = ConfigScope.MODULE.value,
        scope_id: Optional[str] = None,
    ) -> Optional[ModuleConfig]:
        """Look up a row by its natural key."""
        scope_clause = (
            ModuleConfig.scope_id.is_(None) if scope_id is None
            else ModuleConfig.scope_id == scope_id
        )
        result = await self.db.execute(
            select(ModuleConfig).where(
                ModuleConfig.module_name == module_name,
                ModuleConfig.key == key,
                ModuleConfig.scope == scope,
                scope_clause,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        module_name: str,
        key: str,
        value: Any,
        scope: str = ConfigScope.MODULE.value,
        scope_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ModuleConfig:
        """Create or replace the value stored under the natural key."""
        if scope not in (ConfigScope.MODULE.value, ConfigScope.INSTANCE.value):
            raise ValidationError(f"Invalid config scope: {scope}")
        if scope == ConfigScope.INSTANCE.value and scope_id is None:
            raise ValidationError("Instance-scoped config requires a scopeId")
        if scope == ConfigScope.MODULE.value:
            scope_id = None

        existing = await self.find(module_name, key, scope, scope_id)
        if existing:
            existing.value = value
            if description is not None:
                existing.description = description
            await self.db.flush()
            await self.db.refresh(existing)
            return existing

        config = await self.create({
            "module_name": module_name,
            "scope": scope,
            "scope_id": scope_id,
            "key": key,
            "value": value,
            "description": description,
        })
        logger.info(f"Config created: {module_name}.{key} ({scope}:{scope_id})")
        return config

    async def resolve(
        self,
        module_name: str,
        key: str,
        scope_id: Optional[Any] = None,
    ) -> dict[str, Any]:
        """Resolve the effective value of a config key.

        Returns:
            ``{key, value, scope, scopeId, source}`` where ``source`` is one of
            ``instance``, ``module``, ``schema`` or ``default``
        """
        if scope_id is not None and scope_id != "":
            scope_id = str(scope_id)
            instance = await self.find(module_name, key, ConfigScope.INSTANCE.value, scope_id)
            if instance:
                return _resolved(key, instance.value, ConfigScope.INSTANCE.value, scope_id, ConfigSource.INSTANCE)

        module = await self.find(module_name, key)
        if module:
            return _resolved(key, module.value, ConfigScope.MODULE.value, None, ConfigSource.MODULE)

        defaults = self.schema_defaults.get(module_name, {})
        if key in defaults:
            return _resolved(key, defaults[key], None, None, ConfigSource.SCHEMA)

        return _resolved(key, None, None, None, ConfigSource.DEFAULT)


def _resolved(
    key: str,
    value: Any,
    scope: Optional[str],
    scope_id: Optional[str],
    source: ConfigSource,
) -> dict[str, Any]:
    return {
        "key": key,
        "value": value,
        "scope": scope,
        "scopeId": scope_id,
        "source": source.value,
    }
