"""
DuckDB Adapter for SiteLens

DuckDB is an embedded analytical database, used for:
- Local development without a ClickHouse server
- Integration tests of the batch executor

Queries are written in ClickHouse SQL with {name:Type} parameters; this
adapter transpiles them with sqlglot to DuckDB SQL with `$name` parameters
and binds only the names the statement references.
"""

import time
import logging
from typing import Any, Dict, Optional, Tuple

import duckdb

from sitelens.adapters.base import BaseAdapter, AdapterResult, ConnectionError, QueryError
from sitelens.query.exceptions import QueryCompileError
from sitelens.query.placeholders import parse_sql, referenced_names, to_dollar_parameters

logger = logging.getLogger(__name__)


class DuckDBAdapter(BaseAdapter):
    """
    Adapter for DuckDB embedded database.

    Config options:
        database: Path to database file, or ":memory:" (default)
        read_only: Open in read-only mode (default: False)

    Example:
        adapter = DuckDBAdapter({"database": ":memory:"})
        adapter.connect()
        result = adapter.execute("SELECT {x:UInt32} + 1 AS answer", {"x": 41})
    """

    ENGINE = "duckdb"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config or {})

        self.database = self.config.get("database", ":memory:")
        self.read_only = self.config.get("read_only", False)

    def connect(self) -> None:
        """Connect to DuckDB database."""
        try:
            self._connection = duckdb.connect(
                database=self.database,
                read_only=self.read_only
            )
            self._connected = True
            logger.info(f"DuckDB connected: {self.database}")
        except Exception as e:
            raise ConnectionError(
                f"Failed to connect to DuckDB: {e}",
                engine=self.ENGINE,
                original_error=e
            )

    def disconnect(self) -> None:
        """Close DuckDB connection."""
        if self._connection:
            try:
                self._connection.close()
            except Exception as e:
                logger.warning(f"Error closing DuckDB connection: {e}")
            finally:
                self._connection = None
                self._connected = False

    def convert_placeholders(
        self,
        sql: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Transpile ClickHouse SQL with {name:Type} placeholders to DuckDB SQL
        with $name parameters.

        DuckDB rejects values for names the statement does not use, so
        unreferenced entries of `params` are dropped. Statements without a
        `{` cannot hold parameters and run as written.
        """
        params = params or {}
        if "{" not in sql:
            return sql, {}

        expression = parse_sql(sql)
        names = referenced_names(expression)
        missing = [name for name in names if name not in params]
        if missing:
            raise QueryError(
                f"No value bound for parameter(s): {', '.join(missing)}",
                engine=self.ENGINE
            )
        return to_dollar_parameters(expression), {name: params[name] for name in names}

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> AdapterResult:
        """
        Execute SQL query on DuckDB.

        A DuckDB connection is not safe to share between threads, so every
        call runs on its own cursor.
        """
        if not self._connected or not self._connection:
            raise QueryError(
                "Not connected to DuckDB",
                engine=self.ENGINE
            )

        self._update_last_used()
        start_time = time.perf_counter()

        try:
            duck_sql, param_dict = self.convert_placeholders(sql, params)
        except QueryCompileError as e:
            raise QueryError(f"Invalid query parameters: {e}", engine=self.ENGINE, original_error=e)

        cursor = self._connection.cursor()
        try:
            if param_dict:
                cursor.execute(duck_sql, param_dict)
            else:
                cursor.execute(duck_sql)

            description = cursor.description or []
            columns = [d[0] for d in description]
            column_types = {d[0]: str(d[1]) for d in description}
            rows = [dict(zip(columns, row)) for row in cursor.fetchall()]

            execution_time = (time.perf_counter() - start_time) * 1000

            return AdapterResult(
                rows=rows,
                columns=columns,
                column_types=column_types,
                execution_time_ms=execution_time,
                engine=self.ENGINE,
                sql=duck_sql,
                metadata={"database": self.database}
            )

        except Exception as e:
            raise QueryError(
                f"DuckDB query failed: {e}",
                engine=self.ENGINE,
                original_error=e
            )
        finally:
            cursor.close()

    def health_check(self) -> bool:
        """Check DuckDB connection health."""
        if not self._connected or not self._connection:
            return False

        cursor = self._connection.cursor()
        try:
            cursor.execute("SELECT 1").fetchone()
            return True
        except Exception:
            return False
        finally:
            cursor.close()

    def execute_script(self, script: str) -> None:
        """Execute multiple SQL statements (schema setup and seeding)."""
        if not self._connected or not self._connection:
            raise QueryError("Not connected to DuckDB", engine=self.ENGINE)

        try:
            self._connection.execute(script)
        except Exception as e:
            raise QueryError(
                f"DuckDB script failed: {e}",
                engine=self.ENGINE,
                original_error=e
            )
