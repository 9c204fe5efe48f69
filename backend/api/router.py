"""Top-level API router aggregating all route modules."""

from fastapi import APIRouter

from api.routes import executions, health, module_configs, node_types, workflows

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(workflows.router)
api_router.include_router(executions.router)
api_router.include_router(module_configs.router)
api_router.include_router(node_types.router)
