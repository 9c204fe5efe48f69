"""Node type catalog for the visual workflow editor's palette."""

from typing import Optional, Union

from fastapi import APIRouter, Depends, Query

from actions.registry import ActionDefinition, ActionRegistry
from app.dependencies import get_registry

router = APIRouter(prefix="/node-types", tags=["node-types"])


@router.get("", response_model=Union[dict[str, list[ActionDefinition]], list[ActionDefinition]])
async def list_node_types(
    module: Optional[str] = Query(None, description="Only actions of this module"),
    category: Optional[str] = Query(None, description="Only actions of this category"),
    grouped: bool = Query(False, description="Group the full catalog by module"),
    registry: ActionRegistry = Depends(get_registry),
):
    """
    Return the action catalog, optionally filtered.

    ``grouped=true`` returns the whole catalog keyed by module and ignores
    the filters.
    """
    if grouped:
        return registry.grouped()

    nodes = registry.list_all()
    if module:
        nodes = [n for n in nodes if n.module == module]
    if category:
        nodes = [n for n in nodes if n.category == category]
    return nodes
