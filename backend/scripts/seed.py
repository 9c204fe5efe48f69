"""Database seed script: creates the game workflows and default module configs.

Run: python -m scripts.seed
"""

import asyncio
import sys
import os
from typing import Optional

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402


# ─── Workflow 1: player-spawn ──────────────────────────────────
# End the player's open session, resolve the spawn cell from the map's
# START_CELL_POSITION config, then create a session and a map assignment.
PLAYER_SPAWN_DEFINITION = {
    "id": "player-spawn",
    "initial": "checkActiveSession",
    "payloadSchema": [
        {"name": "playerId", "type": "number", "required": True},
        {"name": "mapId", "type": "number", "required": True},
    ],
    "states": {
        "checkActiveSession": {
            "invoke": {
                "src": "sessions.getActive",
                "input": {"playerId": "$.playerId"},
                "onDone": "evaluateActiveSession",
            },
        },
        "evaluateActiveSession": {
            "always": [
                # getActive returns a list; merged into the context it becomes "0", "1", ...
                {
                    "guard": {"params": {"key": "0", "operator": "exists"}},
                    "target": "endExistingSession",
                },
                {"target": "resolveSpawnConfig"},
            ],
        },
        "endExistingSession": {
            "invoke": {
                "src": "core.sql",
                "input": {
                    "query": (
                        "UPDATE player_sessions SET ended_at = NOW() "
                        "WHERE player_id = $1 AND ended_at IS NULL"
                    ),
                    "params": ["$.playerId"],
                },
                "onDone": "resolveSpawnConfig",
            },
        },
        "useLastPosition": {
            "invoke": {
                "src": "core.setVariable",
                "input": {"name": "spawnX", "value": "$.0.currentTileX"},
                "onDone": "setSpawnY",
            },
        },
        "setSpawnY": {
            "invoke": {
                "src": "core.setVariable",
                "input": {"name": "spawnY", "value": "$.0.currentTileY"},
                "onDone": "createSession",
            },
        },
        "resolveSpawnConfig": {
            "invoke": {
                "src": "core.resolveConfig",
                "input": {
                    "moduleName": "maps",
                    "key": "START_CELL_POSITION",
                    "scopeId": "$.mapId",
                },
                "onDone": "extractSpawnFromConfig",
            },
        },
        "extractSpawnFromConfig": {
            "invoke": {
                "src": "core.transform",
                "input": {"mapping": {"spawnX": "$.value.x", "spawnY": "$.value.y"}},
                "onDone": "createSession",
            },
        },
        "createSession": {
            "invoke": {
                "src": "sessions.create",
                "input": {
                    "playerId": "$.playerId",
                    "mapId": "$.mapId",
                    "startTileX": "$.spawnX",
                    "startTileY": "$.spawnY",
                },
                "onDone": "saveSessionId",
            },
        },
        "saveSessionId": {
            "invoke": {
                "src": "core.setVariable",
                "input": {"name": "sessionId", "value": "$.id"},
                "onDone": "createAssignment",
            },
        },
        "createAssignment": {
            "invoke": {
                "src": "positions.assignments.create",
                "input": {
                    "playerId": "$.playerId",
                    "mapId": "$.mapId",
                    "spawnTileX": "$.spawnX",
                    "spawnTileY": "$.spawnY",
                },
                "onDone": "saveAssignmentId",
            },
        },
        "saveAssignmentId": {
            "invoke": {
                "src": "core.setVariable",
                "input": {"name": "assignmentId", "value": "$.id"},
                "onDone": "done",
            },
        },
        "done": {"type": "final"},
    },
}

# ─── Workflow 2: session-end ───────────────────────────────────
SESSION_END_DEFINITION = {
    "id": "session-end",
    "initial": "updateSession",
    "payloadSchema": [
        {"name": "sessionId", "type": "number", "required": True},
        {"name": "assignmentId", "type": "number", "required": True},
        {"name": "endTileX", "type": "number", "required": True},
        {"name": "endTileY", "type": "number", "required": True},
        {"name": "tilesTraveled", "type": "number", "required": True},
        {"name": "chunksLoaded", "type": "number", "required": True},
    ],
    "states": {
        "updateSession": {
            "invoke": {
                "src": "sessions.update",
                "input": {
                    "id": "$.sessionId",
                    "endedAt": "now",
                    "endTileX": "$.endTileX",
                    "endTileY": "$.endTileY",
                    "tilesTraveled": "$.tilesTraveled",
                    "chunksLoaded": "$.chunksLoaded",
                },
                "onDone": "updateAssignment",
            },
        },
        "updateAssignment": {
            "invoke": {
                "src": "positions.assignments.update",
                "input": {
                    "id": "$.assignmentId",
                    "currentTileX": "$.endTileX",
                    "currentTileY": "$.endTileY",
                },
                "onDone": "emitSessionEnded",
            },
        },
        "emitSessionEnded": {
            "invoke": {
                "src": "core.emit",
                "input": {
                    "event": "sessions.session.ended",
                    "payload": {
                        "sessionId": "$.sessionId",
                        "endTileX": "$.endTileX",
                        "endTileY": "$.endTileY",
                        "tilesTraveled": "$.tilesTraveled",
                        "chunksLoaded": "$.chunksLoaded",
                    },
                },
                "onDone": "done",
            },
        },
        "done": {"type": "final"},
    },
}

# ─── Workflow 3: session-resume ────────────────────────────────
SESSION_RESUME_DEFINITION = {
    "id": "session-resume",
    "initial": "checkActiveSession",
    "payloadSchema": [
        {"name": "playerId", "type": "number", "required": True},
    ],
    "states": {
        "checkActiveSession": {
            "invoke": {
                "src": "sessions.getActive",
                "input": {"playerId": "$.playerId"},
                "onDone": "checkHasSession",
            },
        },
        "checkHasSession": {
            "always": [
                {
                    "guard": {"params": {"key": "data.length", "operator": ">", "value": 0}},
                    "target": "extractSession",
                },
                {"target": "noActiveSession"},
            ],
        },
        "extractSession": {
            "invoke": {
                "src": "core.transform",
                "input": {
                    "mapping": {
                        "sessionId": "$.data.0.id",
                        "mapId": "$.data.0.mapId",
                        "hasSession": True,
                    },
                },
                "onDone": "getAssignment",
            },
        },
        "getAssignment": {
            "invoke": {
                "src": "positions.assignments.getActive",
                "input": {"playerId": "$.playerId"},
                "onDone": "done",
            },
        },
        "noActiveSession": {
            "invoke": {
                "src": "core.setVariable",
                "input": {"name": "hasSession", "value": False},
                "onDone": "done",
            },
        },
        "done": {"type": "final"},
    },
}

WORKFLOW_SEEDS = [
    {
        "name": "Player Spawn",
        "slug": "player-spawn",
        "description": (
            "Orchestrates player spawning: ends existing session, resolves spawn position "
            "(config START_CELL_POSITION), creates session + map assignment."
        ),
        "definition": PLAYER_SPAWN_DEFINITION,
        "enabled": True,
    },
    {
        "name": "Session End",
        "slug": "session-end",
        "description": (
            "Terminates a session: updates session with final stats, saves final position "
            "on assignment, emits session.ended event."
        ),
        "definition": SESSION_END_DEFINITION,
        "enabled": True,
    },
    {
        "name": "Session Resume",
        "slug": "session-resume",
        "description": (
            "Checks if a player has an active session and returns session + position data "
            "for resuming gameplay."
        ),
        "definition": SESSION_RESUME_DEFINITION,
        "enabled": True,
    },
]

CONFIG_SEEDS = [
    {
        "module_name": "maps",
        "scope": "module",
        "key": "START_CELL_POSITION",
        "value": {"x": 0, "y": 0},
        "description": "Default spawn tile position for all maps",
    },
    {
        "module_name": "maps",
        "scope": "instance",
        "scope_id": "1",
        "key": "START_CELL_POSITION",
        "value": {"x": 16, "y": 16},
        "description": "Spawn at center of Test Discovery World (map 1)",
    },
    {
        "module_name": "maps",
        "scope": "module",
        "key": "MAX_DISCOVERY_CHUNKS",
        "value": 10000,
        "description": "Maximum chunks a discovery map can auto-generate",
    },
    {
        "module_name": "maps",
        "scope": "module",
        "key": "DEFAULT_SPAWN_RADIUS",
        "value": 2,
        "description": "Radius around spawn to pre-load chunks",
    },
    {
        "module_name": "sessions",
        "scope": "module",
        "key": "SESSION_TTL_SECONDS",
        "value": 300,
        "description": "Seconds of inactivity before session auto-expires",
    },
    {
        "module_name": "sessions",
        "scope": "module",
        "key": "SESSION_WARNING_SECONDS",
        "value": 240,
        "description": "Seconds of inactivity before showing expiry warning in UI",
    },
]


async def seed(session_factory: Optional[async_sessionmaker] = None) -> dict:
    """Seed the database with the game workflows and config defaults.

    Rows that already exist (workflows by slug, configs by module, scope,
    scope id and key) are left untouched.

    Returns:
        Number of workflows and configs created
    """
    from db.models.workflow import Workflow
    from services.config_service import ModuleConfigService

    if session_factory is None:
        from db.database import AsyncSessionLocal
        session_factory = AsyncSessionLocal

    created = {"workflows": 0, "configs": 0}

    async with session_factory() as db:
        # 1. Workflow definitions
        for wf in WORKFLOW_SEEDS:
            result = await db.execute(select(Workflow).where(Workflow.slug == wf["slug"]))
            if result.scalar_one_or_none():
                print(f"[seed] Workflow exists: {wf['slug']}")
                continue
            db.add(Workflow(version=1, **wf))
            created["workflows"] += 1
            print(f"[seed] Created workflow: {wf['slug']}")

        # 2. Module config defaults
        configs = ModuleConfigService(db)
        for cfg in CONFIG_SEEDS:
            existing = await configs.find(
                cfg["module_name"], cfg["key"], cfg["scope"], cfg.get("scope_id")
            )
            if existing:
                continue
            await configs.create(cfg)
            created["configs"] += 1

        await db.commit()

    print(
        f"[seed] Seeded {created['workflows']} workflow definition(s) "
        f"+ {created['configs']} module config value(s)"
    )
    return created


async def main() -> None:
    from db.database import init_db

    await init_db()
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
