"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
This makes it trivial to add /api/v2 later without touching existing routes.
"""

from fastapi import APIRouter

from api.routes import health, step_types, webhooks, workflows

api_v1_router = APIRouter()

# Health
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Workflows
api_v1_router.include_router(
    workflows.router,
    prefix="/workflows",
    tags=["Workflows"],
)

# Step types
api_v1_router.include_router(
    step_types.router,
    prefix="/step-types",
    tags=["Step Types"],
)

# Webhooks (unauthenticated receiver)
api_v1_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"],
)
