"""Workflow definition and run-state types.

Definition schema (stored in Workflow.definition JSON):
{
    "id": "6f0c...",
    "name": "Notify on new lead",
    "trigger": { "type": "schedule", "cron": "*/15 * * * *" },
    "steps": [
        {
            "id": "s1",
            "type": "http_request",
            "config": { "method": "GET", "url": "https://api.example.com/leads" }
        },
        {
            "id": "s2",
            "type": "send_email",
            "config": { "to": "{{step_s1.data.email}}", "subject": "New lead", "body": "..." }
        }
    ]
}

Trigger variants: {"type": "schedule", "cron": ...}, {"type": "webhook",
"webhookId": ...}, {"type": "manual"}.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.constants import ExecutionStatus, StepStatus
from core.utils import isoformat_utc


# ─── Definition ───────────────────────────────────────────────

class ScheduleTrigger(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["schedule"] = "schedule"
    cron: str = ""
    timezone: str = "UTC"


class WebhookTrigger(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Literal["webhook"] = "webhook"
    webhook_id: str = Field(default="", alias="webhookId")


class ManualTrigger(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["manual"] = "manual"


Trigger = Annotated[
    Union[ScheduleTrigger, WebhookTrigger, ManualTrigger],
    Field(discriminator="type"),
]


class WorkflowStep(BaseModel):
    """One step. ``type`` stays a plain string so an unknown kind fails at run time."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str
    config: dict[str, Any] = Field(default_factory=dict)


class WorkflowDefinition(BaseModel):
    """Immutable-per-run blueprint: a trigger and an ordered list of steps."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    name: str = ""
    trigger: Trigger = Field(default_factory=ManualTrigger)
    steps: list[WorkflowStep] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return self

    @classmethod
    def from_json(cls, data: dict, **overrides: Any) -> "WorkflowDefinition":
        """Parse stored definition JSON; ``overrides`` win over stored keys (e.g. id)."""
        return cls.model_validate({**(data or {}), **overrides})

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @property
    def cron(self) -> Optional[str]:
        return self.trigger.cron if isinstance(self.trigger, ScheduleTrigger) else None

    @property
    def webhook_id(self) -> Optional[str]:
        return self.trigger.webhook_id if isinstance(self.trigger, WebhookTrigger) else None


# ─── Run state ────────────────────────────────────────────────

@dataclass
class ExecutionContext:
    """In-memory state threaded through one run.

    ``step_results`` keeps insertion order, which is execution order.
    """

    workflow_id: str
    execution_id: str
    user_id: Optional[str] = None
    trigger_data: Any = None
    step_results: dict[str, Any] = field(default_factory=dict)


@dataclass
class StepLogEntry:
    """Log line for one attempted step; serialized in camelCase for viewers."""

    step_id: str
    step_type: str
    started_at: str = field(default_factory=isoformat_utc)
    status: StepStatus = StepStatus.RUNNING
    completed_at: Optional[str] = None
    result: Any = None
    error: Optional[str] = None

    def complete(self, result: Any) -> None:
        self.status = StepStatus.COMPLETED
        self.result = result
        self.completed_at = isoformat_utc()

    def fail(self, error: str) -> None:
        self.status = StepStatus.FAILED
        self.error = error
        self.completed_at = isoformat_utc()

    def to_dict(self) -> dict:
        data = {
            "stepId": self.step_id,
            "stepType": self.step_type,
            "startedAt": self.started_at,
            "status": self.status.value,
            "completedAt": self.completed_at,
        }
        if self.status == StepStatus.FAILED:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StepLogEntry":
        return cls(
            step_id=data["stepId"],
            step_type=data.get("stepType", ""),
            started_at=data.get("startedAt", ""),
            status=StepStatus(data.get("status", StepStatus.RUNNING.value)),
            completed_at=data.get("completedAt"),
            result=data.get("result"),
            error=data.get("error"),
        )


@dataclass
class ExecutionRecord:
    """Persisted outcome of one run, as returned by the engine and the store."""

    id: str
    workflow_id: str
    status: ExecutionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    execution_log: list[StepLogEntry] = field(default_factory=list)
    trigger_data: Any = None
    user_id: Optional[str] = None

    def log_dicts(self) -> list[dict]:
        return [entry.to_dict() for entry in self.execution_log]

    @classmethod
    def from_model(cls, execution) -> "ExecutionRecord":
        """Build from an ``Execution`` ORM row."""
        return cls(
            id=execution.id,
            workflow_id=execution.workflow_id,
            status=ExecutionStatus(execution.status),
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            error_message=execution.error_message,
            execution_log=[StepLogEntry.from_dict(e) for e in (execution.execution_log or [])],
            trigger_data=execution.trigger_data,
            user_id=execution.user_id,
        )
