"""Static action catalogue.

Built-in ``core.*`` actions and the routed game-module endpoints a
workflow state can invoke. Entries are plain dicts; ``ActionRegistry``
validates them into ``ActionDefinition`` models.
"""

from typing import Any, Dict, List, Optional


def param(
    name: str,
    type: str = "string",
    description: Optional[str] = None,
    required: bool = False,
    example: Any = None,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"name": name, "type": type, "required": required}
    if description is not None:
        entry["description"] = description
    if example is not None:
        entry["example"] = example
    return entry


def routed(
    id: str,
    label: str,
    module: str,
    description: str,
    method: str,
    route: str,
    inputs: List[Dict[str, Any]],
    outputs: List[Dict[str, Any]],
) -> Dict[str, Any]:
    return {
        "id": id,
        "label": label,
        "module": module,
        "category": "api-call",
        "description": description,
        "inputs": inputs,
        "outputs": outputs,
        "method": method,
        "route": route,
    }


OPERATOR_HELP = "Comparison: ==, !=, >, <, >=, <=, contains, exists"

# ─── Built-in actions ──────────────────────────────────────

BUILTIN_ACTIONS: List[Dict[str, Any]] = [
    {
        "id": "core.condition",
        "label": "Condition",
        "module": "core",
        "category": "condition",
        "description": "Branch workflow based on payload values (if/else)",
        "inputs": [
            param("key", description="Payload key to check", required=True),
            param("operator", description=OPERATOR_HELP, required=True),
            param("value", description="Expected value to compare against"),
        ],
        "outputs": [param("result", "boolean", "Whether condition matched")],
    },
    {
        "id": "core.transform",
        "label": "Transform",
        "module": "core",
        "category": "transform",
        "description": "Map and reshape data between nodes using $.path syntax",
        "inputs": [
            param("mapping", "object", 'Key-value map: { targetKey: "$.sourceKey" }', required=True),
        ],
        "outputs": [param("result", "object", "Transformed payload")],
    },
    {
        "id": "core.delay",
        "label": "Delay",
        "module": "core",
        "category": "delay",
        "description": "Wait a specified number of milliseconds before continuing",
        "inputs": [param("ms", "number", "Milliseconds to wait", required=True, example=1000)],
        "outputs": [],
    },
    {
        "id": "core.emit",
        "label": "Emit Event",
        "module": "core",
        "category": "event-emit",
        "description": "Emit an event on the EventBus",
        "inputs": [
            param("event", description="Event name to emit", required=True, example="players.player.created"),
            param("payload", "object", "Event payload", required=True),
        ],
        "outputs": [],
    },
    {
        "id": "core.log",
        "label": "Log",
        "module": "core",
        "category": "utility",
        "description": "Log data to the application log for debugging",
        "inputs": [
            param("message", description="Log message"),
            param("data", "object", "Data to log"),
        ],
        "outputs": [],
    },
    {
        "id": "core.setVariable",
        "label": "Set Variable",
        "module": "core",
        "category": "variable",
        "description": "Assign a value to a named variable (rename, alias, or set literal)",
        "inputs": [
            param("name", description="Variable name to set", required=True, example="playerId"),
            param("value", description="Value or $.path expression", required=True, example="$.id"),
        ],
        "outputs": [
            param("name", description="The variable name that was set"),
            param("value", description="The resolved value"),
        ],
    },
    {
        "id": "core.sql",
        "label": "Execute SQL",
        "module": "core",
        "category": "data",
        "description": "Run a parameterized SQL query against the database",
        "inputs": [
            param(
                "query", description="SQL query with $1, $2 placeholders", required=True,
                example="SELECT * FROM players WHERE id = $1",
            ),
            param("params", "array", "Array of parameter values ($.path or literals)", example=["$.playerId"]),
        ],
        "outputs": [
            param("rows", "array", "Query result rows"),
            param("rowCount", "number", "Number of rows returned/affected"),
        ],
    },
    {
        "id": "core.resolveConfig",
        "label": "Resolve Config",
        "module": "core",
        "category": "data",
        "description": "Resolve a module config value using the cascade: instance → module → schema default",
        "inputs": [
            param("moduleName", description='Module name (e.g., "maps")', required=True, example="maps"),
            param(
                "key", description='Config key (e.g., "START_CELL_POSITION")', required=True,
                example="START_CELL_POSITION",
            ),
            param("scopeId", description="Instance ID for per-instance override (e.g., mapId)"),
        ],
        "outputs": [
            param("value", "object", "Resolved config value"),
            param("source", description="Where the value came from: instance, module, schema, default"),
        ],
        "method": "GET",
        "route": "module-configs/resolve",
    },
    {
        "id": "core.forEach",
        "label": "ForEach Loop",
        "module": "core",
        "category": "loop",
        "description": "Iterate over an array, optionally in parallel batches",
        "inputs": [
            param("collection", description="$.path to array to iterate", required=True, example="$.rows"),
            param("itemVariable", description='Variable name for current item (default "item")'),
            param("indexVariable", description='Variable name for current index (default "index")'),
            param("maxIterations", "number", "Safety limit (default 100)"),
            param("timeoutMs", "number", "Max duration in ms (default 50000)"),
            param("parallelBatchSize", "number", "Batch size for parallel execution (0 = sequential)"),
        ],
        "outputs": [
            param("results", "array", "Array of iteration results"),
            param("iterationCount", "number", "Number of completed iterations"),
        ],
    },
    {
        "id": "core.whileLoop",
        "label": "While Loop",
        "module": "core",
        "category": "loop",
        "description": "Repeat while a condition holds, with timeout and max iterations",
        "inputs": [
            param("key", description="$.path to check each iteration", required=True),
            param("operator", description=OPERATOR_HELP, required=True),
            param("value", description="Expected value to compare against"),
            param("maxIterations", "number", "Safety limit (default 100)"),
            param("timeoutMs", "number", "Max duration in ms (default 50000)"),
        ],
        "outputs": [param("iterationCount", "number", "Number of completed iterations")],
    },
]

# ─── Game module endpoints ─────────────────────────────────

_ID = param("id", "number", required=True)
_LIST_OUTPUTS = [param("data", "array"), param("total", "number")]

MAPS_ACTIONS: List[Dict[str, Any]] = [
    routed(
        "maps.tiles.list", "List Tiles", "maps",
        "List all tile definitions with pagination and filtering", "GET", "tiles",
        [param("category", description="Filter by tile category"), param("q", description="Search query")],
        [param("data", "array", "Array of tile records"), param("total", "number", "Total count")],
    ),
    routed(
        "maps.tiles.create", "Create Tile", "maps", "Create a new tile definition", "POST", "tiles",
        [
            param("name", description="Tile name", required=True),
            param("category", description="Tile category", required=True),
            param("spriteId", "number", "Sprite ID"),
            param("walkable", "boolean", "Whether tile is walkable"),
        ],
        [param("id", "number", "Created tile ID"), param("name", description="Tile name")],
    ),
    routed(
        "maps.tiles.get", "Get Tile", "maps", "Get a tile definition by ID", "GET", "tiles/[id]",
        [param("id", "number", "Tile ID", required=True)],
        [param("id", "number"), param("name"), param("category")],
    ),
    routed(
        "maps.tiles.update", "Update Tile", "maps", "Update a tile definition", "PUT", "tiles/[id]",
        [
            param("id", "number", "Tile ID", required=True),
            param("name", description="Tile name"),
            param("category", description="Tile category"),
        ],
        [param("id", "number")],
    ),
    routed(
        "maps.tiles.delete", "Delete Tile", "maps", "Delete a tile definition", "DELETE", "tiles/[id]",
        [param("id", "number", "Tile ID", required=True)],
        [],
    ),
    routed(
        "maps.worldConfigs.list", "List World Configs", "maps", "List all world configurations",
        "GET", "world-configs",
        [param("isActive", "boolean", "Filter by active status")],
        [param("data", "array", "Array of world config records"), param("total", "number")],
    ),
    routed(
        "maps.worldConfigs.create", "Create World Config", "maps", "Create a new world configuration",
        "POST", "world-configs",
        [param("name", required=True), param("chunkSize", "number", example=16), param("seed", "number")],
        [param("id", "number"), param("name")],
    ),
    routed(
        "maps.worldConfigs.get", "Get World Config", "maps", "Get a world config by ID",
        "GET", "world-configs/[id]",
        [_ID],
        [param("id", "number"), param("name"), param("isActive", "boolean")],
    ),
    routed(
        "maps.worldConfigs.update", "Update World Config", "maps", "Update a world configuration",
        "PUT", "world-configs/[id]",
        [_ID, param("name"), param("chunkSize", "number")],
        [param("id", "number")],
    ),
    routed(
        "maps.worldConfigs.delete", "Delete World Config", "maps", "Delete a world configuration",
        "DELETE", "world-configs/[id]",
        [_ID],
        [],
    ),
    routed(
        "maps.worldConfigs.activate", "Activate World Config", "maps",
        "Activate a world config (deactivates all others)", "POST", "world-configs/[id]/activate",
        [_ID],
        [param("id", "number"), param("isActive", "boolean")],
    ),
    routed(
        "maps.maps.list", "List Maps", "maps", "List all maps with filtering by status, mode", "GET", "maps",
        [
            param("status", description="Filter by status"),
            param("mode", description="Filter by mode (discovery/prebuilt)"),
            param("q", description="Search query"),
        ],
        _LIST_OUTPUTS,
    ),
    routed(
        "maps.maps.create", "Create Map", "maps", "Create a new map", "POST", "maps",
        [
            param("name", required=True),
            param("mode", description="discovery or prebuilt", required=True),
            param("worldConfigId", "number"),
        ],
        [param("id", "number"), param("name"), param("status")],
    ),
    routed(
        "maps.maps.get", "Get Map", "maps", "Get a map by ID", "GET", "maps/[id]",
        [_ID],
        [param("id", "number"), param("name"), param("mode"), param("status")],
    ),
    routed(
        "maps.maps.update", "Update Map", "maps", "Update a map", "PUT", "maps/[id]",
        [_ID, param("name"), param("status")],
        [param("id", "number")],
    ),
    routed(
        "maps.maps.delete", "Delete Map", "maps", "Delete a map", "DELETE", "maps/[id]",
        [_ID],
        [],
    ),
    routed(
        "maps.chunks.get", "Get Chunks", "maps", "Get chunks for a map (auto-generates for discovery maps)",
        "GET", "maps/[id]/chunks",
        [
            param("id", "number", "Map ID", required=True),
            param("chunk_x", "number", "Specific chunk X"),
            param("chunk_y", "number", "Specific chunk Y"),
        ],
        [param("data", "array", "Chunk data array")],
    ),
    routed(
        "maps.chunks.upsert", "Upsert Chunk", "maps", "Create or update chunk data for a map",
        "POST", "maps/[id]/chunks",
        [
            param("id", "number", "Map ID", required=True),
            param("chunkX", "number", required=True),
            param("chunkY", "number", required=True),
            param("layerData", description="Base64-encoded tile data", required=True),
        ],
        [param("id", "number"), param("version", "number")],
    ),
    routed(
        "maps.generate", "Generate Map Chunks", "maps", "Generate chunks for a map via Perlin noise (bulk)",
        "POST", "maps/[id]/generate",
        [
            param("id", "number", "Map ID", required=True),
            param("radius", "number", "Generation radius (default 2, max 10)"),
        ],
        [param("chunksGenerated", "number"), param("status")],
    ),
]

PLAYERS_ACTIONS: List[Dict[str, Any]] = [
    routed(
        "players.list", "List Players", "players", "List all players with filtering by status", "GET", "players",
        [param("status", description="Filter by player status"), param("q", description="Search query")],
        _LIST_OUTPUTS,
    ),
    routed(
        "players.create", "Create Player", "players", "Create a new player", "POST", "players",
        [param("username", required=True), param("displayName")],
        [param("id", "number"), param("username")],
    ),
    routed(
        "players.get", "Get Player", "players", "Get a player by ID", "GET", "players/[id]",
        [_ID],
        [param("id", "number"), param("username"), param("status")],
    ),
    routed(
        "players.update", "Update Player", "players", "Update a player", "PUT", "players/[id]",
        [_ID, param("displayName"), param("status")],
        [param("id", "number")],
    ),
]

SESSIONS_ACTIONS: List[Dict[str, Any]] = [
    routed(
        "sessions.list", "List Sessions", "sessions", "List all player sessions", "GET", "sessions",
        [param("playerId", "number", "Filter by player"), param("mapId", "number", "Filter by map")],
        _LIST_OUTPUTS,
    ),
    routed(
        "sessions.create", "Create Session", "sessions", "Start a new player session on a map", "POST", "sessions",
        [
            param("playerId", "number", required=True),
            param("mapId", "number", required=True),
            param("startTileX", "number"),
            param("startTileY", "number"),
        ],
        [param("id", "number"), param("playerId", "number"), param("mapId", "number"), param("startedAt")],
    ),
    routed(
        "sessions.get", "Get Session", "sessions", "Get a session by ID", "GET", "sessions/[id]",
        [_ID],
        [param("id", "number"), param("playerId", "number"), param("mapId", "number"), param("status")],
    ),
    routed(
        "sessions.update", "Update Session", "sessions", "Update a session (e.g. set endedAt to end session)",
        "PUT", "sessions/[id]",
        [_ID, param("endedAt", description="ISO timestamp to end session")],
        [param("id", "number")],
    ),
    routed(
        "sessions.getActive", "Get Active Sessions", "sessions", "Get active sessions (endedAt is null)",
        "GET", "sessions/active",
        [param("playerId", "number", "Filter by player")],
        [param("data", "array")],
    ),
]

POSITIONS_MODULE = "player-map-position"

POSITIONS_ACTIONS: List[Dict[str, Any]] = [
    routed(
        "positions.assignments.list", "List Map Assignments", POSITIONS_MODULE, "List all map assignments",
        "GET", "map-assignments",
        [param("playerId", "number"), param("mapId", "number")],
        _LIST_OUTPUTS,
    ),
    routed(
        "positions.assignments.create", "Create Map Assignment", POSITIONS_MODULE,
        "Assign a player to a map (auto-deactivates previous)", "POST", "map-assignments",
        [
            param("playerId", "number", required=True),
            param("mapId", "number", required=True),
            param("spawnTileX", "number"),
            param("spawnTileY", "number"),
        ],
        [param("id", "number"), param("playerId", "number"), param("mapId", "number"), param("isActive", "boolean")],
    ),
    routed(
        "positions.assignments.get", "Get Map Assignment", POSITIONS_MODULE, "Get a map assignment by ID",
        "GET", "map-assignments/[id]",
        [_ID],
        [param("id", "number"), param("playerId", "number"), param("mapId", "number"), param("isActive", "boolean")],
    ),
    routed(
        "positions.assignments.update", "Update Map Assignment", POSITIONS_MODULE,
        "Update a map assignment (e.g. deactivate)", "PUT", "map-assignments/[id]",
        [_ID, param("isActive", "boolean")],
        [param("id", "number")],
    ),
    routed(
        "positions.assignments.getActive", "Get Active Assignment", POSITIONS_MODULE,
        "Get active map assignment for a player", "GET", "map-assignments/active",
        [param("playerId", "number", "Filter by player")],
        [param("data", "object", "Active assignment or null")],
    ),
    routed(
        "positions.record", "Record Position", POSITIONS_MODULE, "Record a player position on the map",
        "POST", "player-positions",
        [
            param(name, "number", required=True)
            for name in (
                "playerId", "sessionId", "mapId", "tileX", "tileY",
                "chunkX", "chunkY", "worldX", "worldY",
            )
        ],
        [param("id", "number")],
    ),
    routed(
        "positions.visitedChunks.record", "Record Chunk Visit", POSITIONS_MODULE,
        "Record/upsert a chunk visit (increments visitCount)", "POST", "visited-chunks",
        [
            param("playerId", "number", required=True),
            param("mapId", "number", required=True),
            param("chunkX", "number", required=True),
            param("chunkY", "number", required=True),
        ],
        [param("id", "number"), param("visitCount", "number")],
    ),
]

MODULE_ACTIONS: List[Dict[str, Any]] = MAPS_ACTIONS + PLAYERS_ACTIONS + SESSIONS_ACTIONS + POSITIONS_ACTIONS

CATALOG: List[Dict[str, Any]] = BUILTIN_ACTIONS + MODULE_ACTIONS
