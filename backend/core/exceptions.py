"""Custom exceptions for the Autoflow engine."""


class AutoflowException(Exception):
    """Base exception for the Autoflow engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(AutoflowException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ValidationError(AutoflowException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConflictError(AutoflowException):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409)


# ─── Execution errors ──────────────────────────────────────────

class StepExecutionError(AutoflowException):
    """A step executor reported a failure (network, timeout, delivery...)."""

    def __init__(self, message: str, step_type: str = ""):
        self.step_type = step_type
        super().__init__(message or "Step failed")


class UnknownStepTypeError(StepExecutionError):
    """Step type has no registered executor."""

    def __init__(self, step_type: str):
        super().__init__(f"Unknown step type: {step_type}", step_type)


class UnknownOperationError(StepExecutionError):
    """transform_data was asked for an operation it does not provide."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Unknown transform operation: {operation}", "transform_data")


# ─── Scheduling errors ─────────────────────────────────────────

class SchedulingError(AutoflowException):
    """A single workflow could not be scheduled (bad cron, missing trigger)."""

    def __init__(self, message: str, workflow_id: str = ""):
        self.workflow_id = workflow_id
        super().__init__(message, 422)
