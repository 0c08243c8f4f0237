"""
FastAPI Dependencies

Reusable dependencies for dependency injection. The registry, store and
executor live on `app.state` (set up by `create_app`), never in module
globals, so tests and multiple app instances can inject their own.
"""

import logging

from fastapi import Depends, Request

from sitelens.adapters.base import BaseAdapter
from sitelens.core.config import Settings
from sitelens.errors import api_key_invalid, api_key_missing, store_unavailable
from sitelens.query.batch import BatchConfig, BatchExecutor
from sitelens.query.registry import QueryRegistry

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> QueryRegistry:
    return request.app.state.registry


def get_store(request: Request) -> BaseAdapter:
    store = getattr(request.app.state, "store", None)
    if store is None:
        settings = request.app.state.settings
        raise store_unavailable(settings.store_engine, "store is not connected")
    return store


def get_api_key(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Extract and check the API key from the header named by `Settings.api_key_header`."""
    api_key = request.headers.get(settings.api_key_header)
    if not api_key:
        raise api_key_missing(settings.api_key_header)
    if api_key not in settings.api_key_list:
        logger.warning("Rejected request with invalid API key")
        raise api_key_invalid(api_key)
    return api_key


def get_executor(
    registry: QueryRegistry = Depends(get_registry),
    store: BaseAdapter = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> BatchExecutor:
    """Per-request executor over the shared registry and store."""
    config = BatchConfig(
        merge_enabled=settings.batch_merge_enabled,
        default_timezone=settings.default_timezone,
    )
    return BatchExecutor(registry, store, config)
