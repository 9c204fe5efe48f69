"""Database models for the workflow engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.workflow_version import WorkflowVersion
from db.models.execution import WorkflowExecution
from db.models.node_execution import NodeExecution
from db.models.module_config import ModuleConfig

__all__ = [
    "Workflow",
    "WorkflowVersion",
    "WorkflowExecution",
    "NodeExecution",
    "ModuleConfig",
]
