"""Constants and enums for the Autoflow engine."""

from enum import Enum


class WorkflowStatus(str, Enum):
    """Lifecycle status of a stored workflow."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Status of a single step log entry."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerType(str, Enum):
    """What starts a workflow run."""

    SCHEDULE = "schedule"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class StepType(str, Enum):
    """Closed set of step kinds the engine knows how to dispatch."""

    HTTP_REQUEST = "http_request"
    SEND_EMAIL = "send_email"
    TRANSFORM_DATA = "transform_data"


class JobStatus(str, Enum):
    """Scheduled job state in the delayed queue."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
