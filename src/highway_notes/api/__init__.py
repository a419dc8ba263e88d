"""API route aggregation.

All routers registered here get mounted in main.py under /api.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health and auth routers are open (auth/me
guards itself); notes and user routes always require a bearer token.
"""

from fastapi import APIRouter, Depends

from highway_notes.api.auth import router as auth_router
from highway_notes.api.health import router as health_router
from highway_notes.api.notes import router as notes_router
from highway_notes.api.user import router as user_router
from highway_notes.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api")

# Open routes (no auth required)
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes (valid bearer token required)
api_router.include_router(notes_router, tags=["notes"], dependencies=_auth)
api_router.include_router(user_router, tags=["user"], dependencies=_auth)
