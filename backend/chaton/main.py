"""
chatON - Main FastAPI Application
Two-party real-time chat: roster with presence, live conversations and
send/edit/delete commands.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional

from .config import settings
from .database import engine as default_engine, init_db, close_db, make_engine, make_session_factory
from .routers import auth_router, chats_router, users_router
from .services.chat_client import ClientRegistry
from .services.document_store import DocumentStore
from .utils.logging_config import get_logger

logger = get_logger(__name__)


def create_app(database_url: Optional[str] = None, latency_compensation: Optional[bool] = None) -> FastAPI:
    """Build the application; tests pass their own database URL."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        app_engine = make_engine(database_url) if database_url else default_engine
        await init_db(app_engine)

        app.state.session_factory = make_session_factory(app_engine)
        app.state.store = DocumentStore(
            app.state.session_factory,
            latency_compensation=(
                settings.LATENCY_COMPENSATION if latency_compensation is None else latency_compensation
            )
        )
        app.state.registry = ClientRegistry(app.state.store)
        logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started")

        yield

        # Shutdown
        app.state.registry.close_all()
        app.state.store.close()
        await close_db(app_engine)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Two-party real-time chat with presence",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify exact origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(chats_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION
        }

    @app.get("/api")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "endpoints": {
                "auth": "/api/auth",
                "users": "/api/users",
                "chats": "/api/chats"
            }
        }

    return app


app = create_app()
