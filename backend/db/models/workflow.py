"""Workflow model."""

from typing import Any, Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Workflow(BaseModel):
    """A stored workflow reachable through its trigger path.

    Attributes:
        id: Unique identifier (UUID string)
        name: Workflow name
        enabled: Disabled workflows reject trigger calls
        trigger_path: Unique path of the form ``/t/<token>``
        steps: Raw step declarations, any accepted shape
        created_by_id: Owner; private operation templates resolve against it
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "workflows"

    name: Mapped[str] = mapped_column(nullable=False, default="")
    enabled: Mapped[bool] = mapped_column(default=True)
    trigger_path: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    steps: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)
    created_by_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)

    runs: Mapped[list["WorkflowRun"]] = relationship(
        "WorkflowRun",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )
