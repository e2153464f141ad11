"""API route aggregation.

All routers registered here get mounted in main.py. Auth is applied at
the include_router level so every route except health requires a valid
Bearer token.
"""

from fastapi import APIRouter, Depends

from teamchat.api.health import router as health_router
from teamchat.api.messages import router as messages_router
from teamchat.api.notifications import router as notifications_router
from teamchat.api.projects import router as projects_router
from teamchat.api.tasks import router as tasks_router
from teamchat.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])

# Protected routes
api_router.include_router(messages_router, tags=["messages", "threads"], dependencies=_auth)
api_router.include_router(tasks_router, tags=["tasks"], dependencies=_auth)
api_router.include_router(projects_router, tags=["projects", "notes"], dependencies=_auth)
api_router.include_router(notifications_router, tags=["notifications"], dependencies=_auth)
