"""
ClickHouse Adapter for SiteLens

Production store for event analytics. Queries are sent with server-side
parameter binding: the {name:Type} placeholders produced by the query
builders are passed to ClickHouse as-is and the values travel separately,
so no value is ever interpolated into SQL text.
"""

import time
import logging
from typing import Any, Dict, Optional

import clickhouse_connect

from sitelens.adapters.base import BaseAdapter, AdapterResult, ConnectionError, QueryError

logger = logging.getLogger(__name__)


class ClickHouseAdapter(BaseAdapter):
    """
    Adapter for ClickHouse.

    Config options:
        host: ClickHouse server host (required)
        port: HTTP port (default: chosen by clickhouse-connect)
        username: Username (default: "default")
        password: Password (default: "")
        database: Default database (default: "default")
        secure: Use HTTPS/TLS (default: False)
        verify: Verify TLS certificates (default: True)
        connect_timeout: Connection timeout in seconds (default: 10)
        send_receive_timeout: Query timeout in seconds (default: 300)
        compress: Enable compression (default: True)
        settings: Dict of ClickHouse query settings
            Example: {"max_execution_time": 60}

    Example:
        adapter = ClickHouseAdapter({
            "host": "clickhouse.internal",
            "username": "readonly",
            "password": "secret",
            "database": "analytics"
        })
        adapter.connect()
        result = adapter.execute(
            "SELECT count() AS c FROM events WHERE client_id = {websiteId:String}",
            {"websiteId": "site_a"}
        )
    """

    ENGINE = "clickhouse"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        if "host" not in config:
            raise ConnectionError(
                "Missing required config: host",
                engine=self.ENGINE
            )

        self.host = config["host"]
        self.port = config.get("port")
        self.username = config.get("username", "default")
        self.password = config.get("password", "")
        self.database = config.get("database", "default")

        self.secure = config.get("secure", False)
        self.verify = config.get("verify", True)

        self.connect_timeout = config.get("connect_timeout", 10)
        self.send_receive_timeout = config.get("send_receive_timeout", 300)
        self.compress = config.get("compress", True)

        self.settings = config.get("settings", {})

        self._client = None

    def connect(self) -> None:
        """Connect to ClickHouse."""
        try:
            logger.info(f"Connecting to ClickHouse: {self.host}")

            connect_params = {
                "host": self.host,
                "username": self.username,
                "password": self.password,
                "database": self.database,
                "secure": self.secure,
                "verify": self.verify,
                "compress": self.compress,
                "connect_timeout": self.connect_timeout,
                "send_receive_timeout": self.send_receive_timeout,
                # one client serves concurrent requests; a ClickHouse session
                # accepts a single query at a time
                "autogenerate_session_id": False,
            }
            if self.port:
                connect_params["port"] = self.port
            if self.settings:
                connect_params["settings"] = self.settings

            self._client = clickhouse_connect.get_client(**connect_params)
            self._client.ping()
            self._connected = True

            logger.info(
                f"ClickHouse connected: {self.host}/{self.database} "
                f"(version: {self._client.server_version})"
            )

        except Exception as e:
            raise ConnectionError(
                f"Failed to connect to ClickHouse: {e}",
                engine=self.ENGINE,
                original_error=e
            )

    def disconnect(self) -> None:
        """Close ClickHouse connection."""
        if self._client:
            try:
                self._client.close()
            except Exception as e:
                logger.warning(f"Error closing ClickHouse connection: {e}")
            finally:
                self._client = None
                self._connected = False

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> AdapterResult:
        """Execute a parameterized query on ClickHouse."""
        if not self._connected or not self._client:
            raise QueryError(
                "Not connected to ClickHouse",
                engine=self.ENGINE
            )

        self._update_last_used()
        start_time = time.perf_counter()

        ch_sql, param_dict = self.convert_placeholders(sql, params)

        try:
            if param_dict:
                result = self._client.query(ch_sql, parameters=param_dict)
            else:
                result = self._client.query(ch_sql)

            columns = list(result.column_names)
            column_types = {}
            if result.column_types:
                for i, col in enumerate(columns):
                    column_types[col] = str(result.column_types[i])

            rows = [dict(zip(columns, row)) for row in result.result_rows]

            execution_time = (time.perf_counter() - start_time) * 1000

            summary = result.summary or {}
            metadata = {
                "host": self.host,
                "database": self.database,
                "rows_read": summary.get("read_rows", 0),
                "bytes_read": summary.get("read_bytes", 0),
                "elapsed": summary.get("elapsed", 0),
            }

            return AdapterResult(
                rows=rows,
                columns=columns,
                column_types=column_types,
                execution_time_ms=execution_time,
                engine=self.ENGINE,
                sql=ch_sql,
                metadata=metadata
            )

        except Exception as e:
            raise QueryError(
                f"ClickHouse query failed: {e}",
                engine=self.ENGINE,
                original_error=e
            )

    def health_check(self) -> bool:
        """Check ClickHouse connection health."""
        if not self._connected or not self._client:
            return False

        try:
            return bool(self._client.ping())
        except Exception:
            return False
