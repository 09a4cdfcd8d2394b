"""Database models for the Autoflow engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.execution import Execution
from db.models.scheduled_job import ScheduledJob

__all__ = [
    "Workflow",
    "Execution",
    "ScheduledJob",
]
