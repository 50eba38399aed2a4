from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import configure_logging
from ..db.session import Database
from ..persistence import CurveRepository
from .errors import register_exception_handlers
from .routes import (
    curve_schedule_router,
    curve_upload_router,
    curves_router,
    delivery_requests_router,
    system_router,
)

logger = logging.getLogger(__name__)


def create_app(database: Database | None = None) -> FastAPI:
    """
    Instantiate the FastAPI application and register routers.

    Creates the main FastAPI application with CORS middleware, the envelope
    exception handlers and all domain-specific routers:
    - curves: Definition/instance catalog, CSV download/upload, defaults
    - curve_upload: Definition and instance creation, JSON data upload, enums
    - curve_schedule: Schedule preview, creation, listing and updates
    - delivery_requests: Delivery request tracking
    - system: Health check and shared header proxy

    The lifespan opens the database (or adopts ``database`` when given),
    creates missing tables and exposes a CurveRepository on ``app.state``.

    Args:
        database: Optional pre-built handle. When omitted, one is opened from
            the environment configuration and disposed at shutdown.

    Returns:
        FastAPI: Configured FastAPI application instance ready to serve.

    Example:
        ```python
        # Direct usage
        app = create_app()
        uvicorn.run(app, host="0.0.0.0", port=8000)

        # Or use the pre-created instance
        from gridstor_analytics.api.app import app
        ```
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        handle = database or Database.from_url()
        handle.create_all()
        app.state.database = handle
        app.state.repository = CurveRepository(handle.session_factory)
        logger.info("GridStor Analytics API ready")
        yield
        if database is None:
            handle.dispose()

    app = FastAPI(
        title="GridStor Analytics API",
        version="0.1.0",
        description="Forecast curve catalog, uploads, schedules and delivery tracking.",
        lifespan=lifespan,
    )

    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register all domain-specific routers
    app.include_router(curves_router)
    app.include_router(curve_upload_router)
    app.include_router(curve_schedule_router)
    app.include_router(delivery_requests_router)
    app.include_router(system_router)

    return app


app = create_app()
