"""
Store Adapters for SiteLens

This package provides a unified interface over the analytical stores the
batch executor runs queries against. Each adapter handles:
- Connection management
- Query execution with {name:Type} parameters
- Result formatting (list of dicts)

Supported Engines:
- ClickHouse (production)
- DuckDB (local development and tests)
"""

from sitelens.adapters.base import AdapterError, AdapterResult, BaseAdapter, ConnectionError, QueryError
from sitelens.adapters.factory import (
    get_adapter,
    is_engine_supported,
    list_adapters,
    register_adapter,
)

__all__ = [
    "AdapterError",
    "AdapterResult",
    "BaseAdapter",
    "ConnectionError",
    "QueryError",
    "get_adapter",
    "is_engine_supported",
    "list_adapters",
    "register_adapter",
]
