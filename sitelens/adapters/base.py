"""
Base Adapter Interface for SiteLens

Every analytical store the batch executor talks to implements this interface.

DESIGN PRINCIPLES:
-----------------
1. Queries use ClickHouse typed parameters: {name:Type}
2. Parameters are a flat mapping of name -> scalar/array value
3. Results returned as list of dicts (engine-agnostic)
4. Errors wrapped in AdapterError for consistent handling
5. Adapters hold one connection; config passed on init
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """Base exception for adapter errors."""

    def __init__(self, message: str, engine: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.engine = engine
        self.original_error = original_error


class ConnectionError(AdapterError):
    """Failed to connect to the store."""
    pass


class QueryError(AdapterError):
    """Query execution failed (syntax, parameter binding, timeout, limits)."""
    pass


@dataclass
class AdapterResult:
    """
    Standardized result from query execution.

    Attributes:
        rows: List of result rows as dicts
        columns: List of column names
        column_types: Optional mapping of column name to type
        row_count: Number of rows returned
        execution_time_ms: Query execution time in milliseconds
        engine: Store engine name
        sql: Executed SQL (with placeholders, not values)
        metadata: Additional engine-specific metadata
    """
    rows: List[Dict[str, Any]]
    columns: List[str]
    column_types: Dict[str, str] = field(default_factory=dict)
    row_count: int = 0
    execution_time_ms: float = 0.0
    engine: str = ""
    sql: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.row_count = len(self.rows)


class BaseAdapter(ABC):
    """
    Abstract base class for store adapters.

    Each adapter must implement:
    - connect(): Establish connection
    - disconnect(): Close connection
    - execute(): Run a query with named parameters
    - health_check(): Verify connection is alive

    Usage:
        adapter = ClickHouseAdapter(config)
        adapter.connect()

        result = adapter.execute(
            sql="SELECT path, count() AS views FROM events WHERE client_id = {websiteId:String} GROUP BY path",
            params={"websiteId": "site_a"}
        )

        adapter.disconnect()
    """

    # Engine identifier (e.g., "clickhouse", "duckdb")
    ENGINE: str = "base"

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize adapter with connection configuration.

        Args:
            config: Store-specific configuration dict
                    (host, port, username, password, database, etc.)
        """
        self.config = config
        self._connection = None
        self._connected = False
        self._last_used = None

    @abstractmethod
    def connect(self) -> None:
        """
        Establish connection to the store.

        Raises:
            ConnectionError: If connection fails
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """
        Close the connection.

        Should be safe to call even if not connected.
        """
        pass

    @abstractmethod
    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> AdapterResult:
        """
        Execute SQL query and return results.

        Args:
            sql: SQL with {name:Type} placeholders
            params: Parameter values keyed by placeholder name

        Returns:
            AdapterResult with rows, columns, and metadata

        Raises:
            QueryError: If query execution fails
        """
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if connection is alive and usable.

        Returns:
            True if connection is healthy, False otherwise
        """
        pass

    def convert_placeholders(
        self,
        sql: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Convert {name:Type} placeholders to the engine-specific format.

        Default implementation returns sql unchanged (ClickHouse binds
        {name:Type} natively). Override in adapters that need a different
        parameter syntax.

        Returns:
            (converted_sql, params)
        """
        return sql, dict(params or {})

    def is_connected(self) -> bool:
        """Check if adapter has an active connection."""
        return self._connected

    def get_engine_info(self) -> Dict[str, Any]:
        """Get information about this adapter/engine."""
        return {
            "engine": self.ENGINE,
            "connected": self._connected,
            "last_used": self._last_used.isoformat() if self._last_used else None
        }

    def _update_last_used(self):
        self._last_used = datetime.now(timezone.utc)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False
