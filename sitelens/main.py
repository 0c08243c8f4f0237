"""
SiteLens - Main Application

Batched analytics queries for website dashboards.

A dashboard asks for many small reports at once (top pages, referrers,
countries...). The batch endpoint merges reports sharing an output shape
into one UNION ALL statement, splits the rows back out, and falls back to
running queries one by one when a merged run fails.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request

from sitelens import __version__
from sitelens.adapters import AdapterError, BaseAdapter, get_adapter
from sitelens.api.v1 import query_router
from sitelens.core.config import Settings
from sitelens.core.config import settings as default_settings
from sitelens.errors import install_error_handlers
from sitelens.query.registry import QueryRegistry


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "request_id"):
            record.request_id = _request_id.get()
        return True


logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

for handler in logging.root.handlers:
    handler.addFilter(RequestIdFilter())

logger = logging.getLogger(__name__)


# =============================================================================
# STARTUP & SHUTDOWN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the analytics store unless one was injected."""
    settings: Settings = app.state.settings
    owns_store = app.state.store is None

    if owns_store:
        try:
            app.state.store = get_adapter(settings.store_engine, settings.store_config())
            logger.info(f"Connected to {settings.store_engine} store")
        except AdapterError as e:
            logger.error(f"Store connection failed, queries will return 503: {e}")

    logger.info(f"{settings.app_name} started with {len(app.state.registry)} query types")
    yield

    if owns_store and app.state.store is not None:
        app.state.store.disconnect()
        app.state.store = None
        logger.info("Store connection closed")


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[QueryRegistry] = None,
    store: Optional[BaseAdapter] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Settings to use (environment-based defaults if omitted)
        registry: Query registry (loaded from the configured catalog if omitted)
        store: Connected store adapter (connected on startup if omitted)
    """
    settings = settings or default_settings
    if registry is None:
        registry = QueryRegistry.from_catalog(settings.queries_catalog)

    app = FastAPI(
        title=f"{settings.app_name} API",
        version=__version__,
        description="Batched analytics queries for website dashboards",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store

    install_error_handlers(app)

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID for tracing and structured logging."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        token = _request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/v1/health", tags=["Health"])
    def health():
        """Public health check endpoint."""
        current = app.state.store
        return {
            "status": "ok",
            "time": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "store": {
                "engine": settings.store_engine,
                "connected": current is not None and current.is_connected(),
            },
            "query_types": len(app.state.registry),
        }

    app.include_router(query_router)
    return app


app = create_app()
