"""
Step Type Registry: the single dispatch point from a step's ``type`` to
its executor.

Keys are the closed StepType enum; anything else is rejected before an
executor is ever invoked.
"""

from typing import Dict, Optional

import httpx

from core.constants import StepType
from core.exceptions import UnknownStepTypeError
from steps.base_step import BaseStep
from steps.implementations.http_request import HttpRequestStep
from steps.implementations.send_email import SendEmailStep, SmtpRelay
from steps.implementations.transform_data import TransformDataStep


class StepRegistry:
    """Handler table of step executor instances."""

    def __init__(self, steps: Optional[Dict[StepType, BaseStep]] = None):
        self._steps: Dict[StepType, BaseStep] = {}
        for step_type, step in (steps or {}).items():
            self.register(step_type, step)

    def register(self, step_type: StepType, step: BaseStep) -> None:
        """Register (or replace) the executor for a step type."""
        self._steps[StepType(step_type)] = step

    def get(self, step_type: str) -> BaseStep:
        """Get the executor for a raw ``type`` string.

        Raises:
            UnknownStepTypeError: If the type is not a known StepType or has
                no registered executor
        """
        try:
            key = StepType(step_type)
        except ValueError:
            raise UnknownStepTypeError(str(step_type))
        step = self._steps.get(key)
        if step is None:
            raise UnknownStepTypeError(key.value)
        return step

    def list_all(self) -> list:
        """List all registered step types with metadata."""
        return [
            {
                "step_type": step_type.value,
                "display_name": step.display_name,
                "description": step.description,
                "config_schema": step.get_config_schema(),
            }
            for step_type, step in self._steps.items()
        ]

    @property
    def available_types(self) -> list:
        return [step_type.value for step_type in self._steps]


def default_step_registry(
    settings,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    mail_relay: Optional[SmtpRelay] = None,
) -> StepRegistry:
    """Build the registry with the three built-in executors wired to settings."""
    return StepRegistry(
        {
            StepType.HTTP_REQUEST: HttpRequestStep(
                timeout=settings.HTTP_STEP_TIMEOUT,
                transport=http_transport,
            ),
            StepType.SEND_EMAIL: SendEmailStep(
                relay=mail_relay or SmtpRelay.from_settings(settings),
                sender=settings.smtp_sender,
            ),
            StepType.TRANSFORM_DATA: TransformDataStep(),
        }
    )
