"""In-process handlers the Direct execution strategy can call.

Routes registered here skip the HTTP round trip when
``EXECUTION_MODE=direct``; any other routed action still goes over
the network.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import async_sessionmaker

from services.config_service import ModuleConfigService
from workflow.strategies import DirectHandler, DirectRequest, DirectResponse


def build_direct_handlers(session_factory: async_sessionmaker) -> Dict[str, Dict[str, DirectHandler]]:
    """Return ``{route: {METHOD: handler}}`` for the app's own endpoints."""

    async def resolve_config(request: DirectRequest) -> DirectResponse:
        module_name = request.query.get("moduleName")
        key = request.query.get("key")
        if not module_name or not key:
            return DirectResponse(400, {"detail": "moduleName and key are required"})

        async with session_factory() as session:
            resolved: Dict[str, Any] = await ModuleConfigService(session).resolve(
                module_name, key, request.query.get("scopeId")
            )
        return DirectResponse(200, resolved)

    return {
        "module-configs/resolve": {"GET": resolve_config},
    }
