"""Constants and enums for the workflow engine."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_EXECUTION_STATUSES = (
    ExecutionStatus.COMPLETED.value,
    ExecutionStatus.FAILED.value,
    ExecutionStatus.CANCELLED.value,
)


class NodeStatus(str, Enum):
    """Status of a single node execution row."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ActionCategory(str, Enum):
    """Palette category of a catalogued action."""

    API_CALL = "api-call"
    EVENT_EMIT = "event-emit"
    CONDITION = "condition"
    TRANSFORM = "transform"
    DELAY = "delay"
    UTILITY = "utility"
    VARIABLE = "variable"
    DATA = "data"
    LOOP = "loop"


class LoopType(str, Enum):
    """Kind of loop state."""

    FOR_EACH = "forEach"
    WHILE = "while"


class ExecutionMode(str, Enum):
    """Transport used to invoke routed actions."""

    NETWORK = "network"
    DIRECT = "direct"


class ConfigScope(str, Enum):
    """Scope of a module config row."""

    MODULE = "module"
    INSTANCE = "instance"


class ConfigSource(str, Enum):
    """Where a resolved config value came from."""

    INSTANCE = "instance"
    MODULE = "module"
    SCHEMA = "schema"
    DEFAULT = "default"


class EngineEvent(str, Enum):
    """Lifecycle events published on the event sink."""

    EXECUTION_STARTED = "workflows.execution.started"
    EXECUTION_COMPLETED = "workflows.execution.completed"
    EXECUTION_FAILED = "workflows.execution.failed"
    EXECUTION_CANCELLED = "workflows.execution.cancelled"
    NODE_STARTED = "workflows.node.started"
    NODE_COMPLETED = "workflows.node.completed"
    NODE_FAILED = "workflows.node.failed"
    WORKFLOW_CREATED = "workflows.workflow.created"
    WORKFLOW_UPDATED = "workflows.workflow.updated"
    WORKFLOW_DELETED = "workflows.workflow.deleted"


# Node types recorded for rows that are not backed by a catalogued action
LOOP_NODE_TYPES = {
    LoopType.FOR_EACH.value: "forEach",
    LoopType.WHILE.value: "whileLoop",
}
GUARD_NODE_TYPE = ActionCategory.CONDITION.value
