"""
Base step interface for all step executor implementations.

Every step kind (HTTP request, email, data transform) inherits from
BaseStep and implements the execute() method.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

from core.constants import StepType
from workflow.models import ExecutionContext

logger = structlog.get_logger(__name__)


class StepResult:
    """Standardized result from step execution."""

    def __init__(
        self,
        success: bool,
        output: Any = None,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        duration_ms: float = 0,
    ):
        self.success = success
        self.output = output
        self.error = error
        self.metadata = metadata or {}
        self.duration_ms = duration_ms

    @classmethod
    def failure(cls, error: str, output: Any = None) -> "StepResult":
        return cls(success=False, output=output, error=error)


class BaseStep(ABC):
    """
    Abstract base class for step executors.

    Executors hold no per-run state; anything they need to reach the
    outside world (HTTP transport, mail relay) is passed to __init__, so a
    single instance can serve concurrent runs.

    Subclasses must implement:
    - execute(config, context) -> StepResult
    - step_type (class attribute)
    - display_name (class attribute)
    """

    step_type: StepType
    display_name: str = "Base Step"
    description: str = "Abstract base step"

    @abstractmethod
    async def execute(
        self,
        config: Dict[str, Any],
        context: ExecutionContext,
    ) -> StepResult:
        """
        Execute the step with its already-resolved configuration.

        Args:
            config: Step configuration with placeholders substituted
            context: Execution context of the current run

        Returns:
            StepResult with output or error
        """
        pass

    async def run(
        self,
        config: Dict[str, Any],
        context: ExecutionContext,
    ) -> StepResult:
        """
        Run the step with timing and error handling.

        This is the entry point called by the workflow engine. Exceptions
        raised by execute() come back as a failed StepResult.
        """
        start = time.monotonic()
        try:
            logger.info(
                "Step starting",
                step_type=self.step_type.value,
                execution_id=context.execution_id,
            )
            result = await self.execute(config, context)
            result.duration_ms = (time.monotonic() - start) * 1000

            logger.info(
                "Step finished",
                step_type=self.step_type.value,
                execution_id=context.execution_id,
                success=result.success,
                duration_ms=round(result.duration_ms, 2),
            )
            return result

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(
                "Step raised",
                step_type=self.step_type.value,
                execution_id=context.execution_id,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            return StepResult(
                success=False,
                error=str(e) or e.__class__.__name__,
                duration_ms=duration_ms,
            )

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        """
        Return JSON schema for step configuration.

        Override in subclasses to define expected config shape.
        """
        return {"type": "object", "properties": {}}
