"""Execution model for the Autoflow engine."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import ExecutionStatus
from db.base import TimestampedModel


class Execution(TimestampedModel):
    """One run of a workflow.

    Attributes:
        id: Unique identifier (UUID string), the run's isolation key
        workflow_id: Foreign key to Workflow
        user_id: User the run executed on behalf of
        status: running, completed or failed
        started_at: Execution start timestamp
        completed_at: Set together with the terminal status
        error_message: Originating step error, only for failed runs
        execution_log: Ordered list of step log entries
        trigger_data: Snapshot of the payload that started the run
    """

    __tablename__ = "workflow_executions"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(
        default=ExecutionStatus.RUNNING.value, index=True
    )
    started_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    execution_log: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    trigger_data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="executions", lazy="noload"
    )
