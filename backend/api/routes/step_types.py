"""Step types API routes.

Exposes the step executors a workflow definition can use.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_runtime
from core.exceptions import NotFoundError, UnknownStepTypeError
from services.runtime import Runtime

router = APIRouter()


@router.get("/", summary="List all available step types")
async def list_step_types(runtime: Runtime = Depends(get_runtime)):
    """Get all registered step types with their config schemas."""
    return {
        "step_types": runtime.steps.list_all(),
        "count": len(runtime.steps.available_types),
    }


@router.get("/{step_type}", summary="Get step type details")
async def get_step_type(step_type: str, runtime: Runtime = Depends(get_runtime)):
    """Get details and config schema for one step type."""
    try:
        step = runtime.steps.get(step_type)
    except UnknownStepTypeError as e:
        raise NotFoundError(e.message)
    return {
        "step_type": step.step_type.value,
        "display_name": step.display_name,
        "description": step.description,
        "config_schema": step.get_config_schema(),
    }
