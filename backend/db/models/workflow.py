"""Workflow model for the Autoflow engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import TriggerType, WorkflowStatus
from db.base import BaseModel


class Workflow(BaseModel):
    """Workflow model representing a stored automation.

    Attributes:
        id: Unique identifier (UUID string)
        user_id: Owner; scheduled and webhook runs execute on their behalf
        name: Workflow name
        description: Workflow description
        definition: JSON workflow definition (trigger + ordered steps)
        status: draft, active or paused
        trigger_type: Copy of definition.trigger.type for indexed lookups
        webhook_id: Copy of definition.trigger.webhookId for webhook routing
        deployed_at: When the workflow was last activated
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "workflows"

    user_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    definition: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        default=WorkflowStatus.DRAFT.value, index=True
    )
    trigger_type: Mapped[str] = mapped_column(
        default=TriggerType.MANUAL.value, index=True
    )
    webhook_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    deployed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    executions: Mapped[list["Execution"]] = relationship(
        "Execution",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    @property
    def is_active(self) -> bool:
        return self.status == WorkflowStatus.ACTIVE.value and not self.is_deleted
