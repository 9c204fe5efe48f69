"""Module config schemas."""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import Field

from api.schemas.common import CamelModel

Scope = Literal["module", "instance"]


class ModuleConfigCreate(CamelModel):
    """Create or replace a config value."""

    module_name: str = Field(min_length=1, description="Owning module, e.g. maps")
    key: str = Field(min_length=1, description="Config key")
    value: Any = Field(default=None, description="Any JSON value")
    scope: Scope = "module"
    scope_id: Optional[str] = Field(default=None, description="Instance id for instance overrides")
    description: Optional[str] = None


class ModuleConfigUpdate(CamelModel):
    value: Any = None
    description: Optional[str] = None


class ModuleConfigResponse(CamelModel):
    id: int
    module_name: str
    scope: str
    scope_id: Optional[str] = None
    key: str
    value: Any = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ModuleConfigListResponse(CamelModel):
    data: List[ModuleConfigResponse]
    total: int
    page: int
    per_page: int


class ResolvedConfigResponse(CamelModel):
    """Effective value of a config key and where it came from."""

    key: str
    value: Any = None
    scope: Optional[str] = None
    scope_id: Optional[str] = None
    source: Literal["instance", "module", "schema", "default"]
