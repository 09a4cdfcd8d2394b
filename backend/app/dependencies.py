"""FastAPI dependency injection functions."""

import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from services.runtime import Runtime

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session from the application's session
    factory that is automatically committed on success or rolled back
    on error.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise


def get_runtime(request: Request) -> Runtime:
    """Engine, scheduler and webhook dispatcher built in the lifespan."""
    return request.app.state.runtime


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings
