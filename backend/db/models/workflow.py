"""Workflow model for the workflow engine."""

from typing import Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel, TimestampMixin


class Workflow(TimestampMixin, BaseModel):
    """Stored state-machine definition that can be executed.

    Attributes:
        id: Serial identifier
        name: Human-readable name
        slug: Unique URL-friendly identifier derived from the name
        description: Free-form description
        definition: JSON state-machine definition (initial, states, payloadSchema)
        trigger_event: Optional event name that starts this workflow
        trigger_condition: Optional guard on the trigger payload
        enabled: Disabled workflows cannot be executed
        version: Bumped every time the definition changes
    """

    __tablename__ = "workflows"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)
    trigger_event: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    trigger_condition: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    enabled: Mapped[bool] = mapped_column(default=True, nullable=False)
    version: Mapped[int] = mapped_column(default=1, nullable=False)

    versions: Mapped[list["WorkflowVersion"]] = relationship(
        "WorkflowVersion",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )
