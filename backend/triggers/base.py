"""Trigger event and acknowledgment types shared by all trigger paths."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from core.constants import TriggerType
from core.utils import utc_now


@dataclass
class TriggerEvent:
    """Represents a single trigger firing event.

    This is what a trigger hands to the workflow engine.
    """

    trigger_type: TriggerType
    workflow_id: str
    user_id: Optional[str] = None
    payload: Any = None
    timestamp: datetime = field(default_factory=utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TriggerResult:
    """Immediate acknowledgment of a trigger."""

    success: bool
    message: str
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"success": self.success, "message": self.message}
        if self.workflow_id:
            data["workflow_id"] = self.workflow_id
        if self.execution_id:
            data["execution_id"] = self.execution_id
        if self.error:
            data["error"] = self.error
        return data
