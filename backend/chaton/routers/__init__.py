"""
API Routers package.
"""

from .auth import router as auth_router
from .chats import router as chats_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "chats_router",
    "users_router"
]
