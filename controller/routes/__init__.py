"""API routes package."""

from controller.routes.auth_routes import router as auth_router
from controller.routes.file_routes import router as file_router
from controller.routes.admin_routes import router as admin_router

__all__ = ["auth_router", "file_router", "admin_router"]
