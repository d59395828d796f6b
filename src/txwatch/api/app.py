"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from txwatch.config import get_settings
from txwatch.tracking.factory import create_watcher
from txwatch.tracking.watcher import TransactionWatcher


def create_app(watcher: Optional[TransactionWatcher] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        watcher: Engine to serve; built from settings when omitted
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        if getattr(app.state, "watcher", None) is None:
            app.state.watcher = create_watcher(settings)
        yield
        # Shutdown
        app.state.watcher.abandon_all()
        app.state.watcher.scheduler.close()

    app = FastAPI(
        title="txwatch API",
        description="Transaction and deposit status tracking",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    if watcher is not None:
        app.state.watcher = watcher

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from txwatch.api.routes import deposits, health, transactions

    app.include_router(health.router, tags=["Health"])
    app.include_router(transactions.router, prefix="/api/v1", tags=["Transactions"])
    app.include_router(deposits.router, prefix="/api/v1", tags=["Deposits"])

    return app
