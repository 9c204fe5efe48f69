"""Module config endpoints: CRUD and cascade resolution."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from api.schemas.common import PaginationParams
from api.schemas.module_config import (
    ModuleConfigCreate,
    ModuleConfigListResponse,
    ModuleConfigResponse,
    ModuleConfigUpdate,
    ResolvedConfigResponse,
)
from app.dependencies import get_db
from core.utils import calculate_offset
from services.config_service import ModuleConfigService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/module-configs", tags=["module-configs"])


@router.get("", response_model=ModuleConfigListResponse)
async def list_configs(
    pagination: PaginationParams = Depends(),
    module_name: Optional[str] = Query(None, alias="moduleName"),
    scope: Optional[str] = Query(None),
    scope_id: Optional[str] = Query(None, alias="scopeId"),
    key: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ModuleConfigListResponse:
    configs, total = await ModuleConfigService(db).list_configs(
        module_name=module_name,
        scope=scope,
        scope_id=scope_id,
        key=key,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return ModuleConfigListResponse(
        data=[ModuleConfigResponse.model_validate(c) for c in configs],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=ModuleConfigResponse, status_code=status.HTTP_201_CREATED)
async def upsert_config(
    request: ModuleConfigCreate,
    db: AsyncSession = Depends(get_db),
) -> ModuleConfigResponse:
    """
    Create a config value, or replace the value stored under the same
    module, scope, scope id and key.
    """
    config = await ModuleConfigService(db).upsert(
        module_name=request.module_name,
        key=request.key,
        value=request.value,
        scope=request.scope,
        scope_id=request.scope_id,
        description=request.description,
    )
    return ModuleConfigResponse.model_validate(config)


@router.get("/resolve", response_model=ResolvedConfigResponse)
async def resolve_config(
    module_name: Optional[str] = Query(None, alias="moduleName"),
    key: Optional[str] = Query(None),
    scope_id: Optional[str] = Query(None, alias="scopeId"),
    db: AsyncSession = Depends(get_db),
) -> ResolvedConfigResponse:
    """
    Resolve the effective value of a key.

    Cascade: instance override (when ``scopeId`` is given), module
    default, then the module's registered schema default.
    """
    if not module_name or not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="moduleName and key are required",
        )
    resolved = await ModuleConfigService(db).resolve(module_name, key, scope_id)
    return ResolvedConfigResponse.model_validate(resolved)


@router.get("/{config_id}", response_model=ModuleConfigResponse)
async def get_config(
    config_id: int,
    db: AsyncSession = Depends(get_db),
) -> ModuleConfigResponse:
    config = await ModuleConfigService(db).get_by_id(config_id)
    if not config:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Config not found")
    return ModuleConfigResponse.model_validate(config)


@router.put("/{config_id}", response_model=ModuleConfigResponse)
async def update_config(
    config_id: int,
    request: ModuleConfigUpdate,
    db: AsyncSession = Depends(get_db),
) -> ModuleConfigResponse:
    """
    Update the value or description of a config row. Fields left out of
    the body keep their current value; an explicit ``null`` clears it.
    """
    svc = ModuleConfigService(db)
    config = await svc.get_by_id(config_id)
    if not config:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Config not found")

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(config, field, value)
    await db.flush()
    await db.refresh(config)
    return ModuleConfigResponse.model_validate(config)


@router.delete("/{config_id}", response_model=ModuleConfigResponse)
async def delete_config(
    config_id: int,
    db: AsyncSession = Depends(get_db),
) -> ModuleConfigResponse:
    svc = ModuleConfigService(db)
    config = await svc.get_by_id(config_id)
    if not config:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Config not found")
    response = ModuleConfigResponse.model_validate(config)
    await svc.delete(config_id)
    return response
