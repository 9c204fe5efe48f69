"""Module configuration values with instance-level overrides."""

from typing import Any, Optional

from sqlalchemy import JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ConfigScope
from db.base import BaseModel, TimestampMixin


class ModuleConfig(TimestampMixin, BaseModel):
    """A config value for a module, optionally scoped to one instance.

    Attributes:
        module_name: Owning module, e.g. ``maps``
        scope: ``module`` for the module-wide value, ``instance`` for an override
        scope_id: Instance identifier for overrides (e.g. a map id), NULL otherwise
        key: Config key, e.g. ``START_CELL_POSITION``
        value: Any JSON value
    """

    __tablename__ = "module_configs"
    __table_args__ = (
        UniqueConstraint(
            "module_name", "scope", "scope_id", "key",
            name="uq_module_configs_module_scope_key",
        ),
    )

    module_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scope: Mapped[str] = mapped_column(
        String(32), default=ConfigScope.MODULE.value, nullable=False
    )
    scope_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
