"""Workflow run model."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import RunStatus
from db.base import BaseModel


class WorkflowRun(BaseModel):
    """One execution of a workflow.

    Attributes:
        workflow_id: Foreign key to Workflow
        status: running, then exactly one of success / skipped / failed
        input: Trigger body as received
        ctx_final: Context when the run stopped
        execution_trace: One entry per executed operation
        error: ``{"message", "details"}`` for failed runs
        started_at: When the run record was created
        finished_at: When the terminal status was written
    """

    __tablename__ = "workflow_runs"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(default=RunStatus.RUNNING.value, index=True)
    input: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    ctx_final: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    execution_trace: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="runs", lazy="noload"
    )
