"""API routers."""

from app.routers.auth import router as auth_router
from app.routers.oauth import router as oauth_router
from app.routers.user import router as user_router

__all__ = ["auth_router", "oauth_router", "user_router"]
