"""
Adapter Factory for SiteLens

Maps an engine name from configuration to an adapter class and creates
connected adapter instances.

Usage:
    from sitelens.adapters import get_adapter

    store = get_adapter("clickhouse", {"host": "localhost", "database": "analytics"})
"""

import logging
from typing import Any, Dict, List, Type

from sitelens.adapters.base import BaseAdapter, ConnectionError
from sitelens.adapters.clickhouse_adapter import ClickHouseAdapter
from sitelens.adapters.duckdb_adapter import DuckDBAdapter

logger = logging.getLogger(__name__)


# =============================================================================
# ADAPTER REGISTRY
# =============================================================================

# Map of engine name -> adapter class
_ADAPTER_REGISTRY: Dict[str, Type[BaseAdapter]] = {}


def register_adapter(engine: str, adapter_class: Type[BaseAdapter]) -> None:
    """
    Register an adapter class for an engine.

    Args:
        engine: Engine identifier (e.g., "clickhouse", "duckdb")
        adapter_class: Adapter class to use for this engine
    """
    _ADAPTER_REGISTRY[engine.lower()] = adapter_class
    logger.debug(f"Registered adapter for engine: {engine}")


def list_adapters() -> List[str]:
    """Get list of registered adapter engines."""
    return list(_ADAPTER_REGISTRY.keys())


def is_engine_supported(engine: str) -> bool:
    return engine.lower() in _ADAPTER_REGISTRY


# =============================================================================
# ADAPTER FACTORY
# =============================================================================

def get_adapter(engine: str, config: Dict[str, Any], connect: bool = True) -> BaseAdapter:
    """
    Create an adapter instance for the specified engine.

    Args:
        engine: Engine name (e.g., "clickhouse", "duckdb")
        config: Connection configuration dict
        connect: Connect before returning (default: True)

    Returns:
        Adapter instance

    Raises:
        ConnectionError: If engine not supported or connection fails
    """
    engine_lower = engine.lower()

    if engine_lower not in _ADAPTER_REGISTRY:
        available = ", ".join(list_adapters())
        raise ConnectionError(
            f"Unsupported engine: {engine}. Available: {available}",
            engine=engine
        )

    adapter = _ADAPTER_REGISTRY[engine_lower](config)
    if connect:
        adapter.connect()
    return adapter


register_adapter("clickhouse", ClickHouseAdapter)
register_adapter("ch", ClickHouseAdapter)  # Alias
register_adapter("duckdb", DuckDBAdapter)
