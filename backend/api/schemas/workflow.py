"""Workflow schemas."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class WorkflowCreate(BaseModel):
    """Request to create a workflow."""

    name: str = Field(min_length=1, description="Workflow name")
    description: Optional[str] = Field(default="", description="Workflow description")
    definition: Dict[str, Any] = Field(
        default_factory=dict,
        description="Workflow definition: trigger plus ordered steps",
    )
    user_id: Optional[str] = Field(default=None, description="Owner; scheduled and webhook runs execute as this user")


class WorkflowUpdate(BaseModel):
    """Request to update a workflow."""

    name: Optional[str] = Field(default=None, min_length=1, description="Workflow name")
    description: Optional[str] = Field(default=None, description="Workflow description")
    definition: Optional[Dict[str, Any]] = Field(default=None, description="Workflow definition")


class WorkflowResponse(BaseModel):
    """Workflow information response."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Workflow ID")
    user_id: Optional[str] = Field(default=None, description="Owner user ID")
    name: str = Field(description="Workflow name")
    description: str = Field(description="Workflow description")
    definition: Dict[str, Any] = Field(description="Workflow definition")
    status: str = Field(description="Current workflow status (draft, active, paused)")
    trigger_type: str = Field(description="schedule, webhook or manual")
    webhook_id: Optional[str] = Field(default=None, description="Webhook id for webhook-triggered workflows")
    deployed_at: Optional[datetime] = Field(default=None, description="Last activation timestamp")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")


class WorkflowListResponse(BaseModel):
    """Paginated list of workflows."""

    workflows: List[WorkflowResponse] = Field(description="List of workflows")
    total: int = Field(description="Total number of workflows")
    page: int = Field(description="Current page number")
    per_page: int = Field(description="Items per page")


class WorkflowActionResponse(BaseModel):
    """Result of a lifecycle action (deploy, pause)."""

    message: str
    workflow: WorkflowResponse
    next_run_at: Optional[datetime] = Field(default=None, description="Next scheduled run, if any")


class ExecuteRequest(BaseModel):
    """Manual run; ``test_data`` becomes the run's trigger data."""

    test_data: Optional[Any] = Field(default=None, description="Trigger data for this run")
