"""Delayed job queue rows for scheduled workflow runs."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import JobStatus
from db.base import TimestampedModel


class ScheduledJob(TimestampedModel):
    """A pending (or claimed) scheduled run of a workflow.

    ``run_at`` is naive UTC. ``(workflow_id, run_at)`` is unique, which makes
    re-enqueueing the same workflow for the same instant a no-op.
    """

    __tablename__ = "scheduled_jobs"
    __table_args__ = (
        UniqueConstraint("workflow_id", "run_at", name="uq_scheduled_jobs_workflow_run_at"),
    )

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    workflow_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, index=True)
    status: Mapped[str] = mapped_column(default=JobStatus.PENDING.value, index=True)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    @property
    def job_key(self) -> str:
        """Stable key for logs: ``<workflow_id>-<epoch ms>``."""
        epoch_ms = int((self.run_at - datetime(1970, 1, 1)).total_seconds() * 1000)
        return f"{self.workflow_id}-{epoch_ms}"
