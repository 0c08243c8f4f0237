"""
Configuration Management

Centralized configuration using Pydantic Settings. Every field can be set
from the environment with the SITELENS_ prefix (e.g. SITELENS_STORE_ENGINE)
or from a .env file.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SITELENS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "SiteLens"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Security
    api_keys: str = Field(default="dev-key-123", description="Comma-separated accepted API keys")
    api_key_header: str = "X-API-Key"

    # Query catalog
    queries_catalog: Optional[str] = Field(default=None, description="Path to queries.yaml; packaged catalog if unset")
    default_timezone: str = "UTC"

    # Batch execution
    batch_max_queries: int = Field(default=50, ge=1)
    batch_merge_enabled: bool = True

    # Store
    store_engine: str = "clickhouse"
    clickhouse_host: str = "localhost"
    clickhouse_port: Optional[int] = None
    clickhouse_username: str = "default"
    clickhouse_password: str = ""
    clickhouse_database: str = "analytics"
    clickhouse_secure: bool = False
    clickhouse_query_timeout: int = 60
    duckdb_database: str = ":memory:"

    @property
    def api_key_list(self) -> List[str]:
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    def store_config(self) -> Dict[str, Any]:
        """Adapter configuration for `store_engine`."""
        if self.store_engine.lower() == "duckdb":
            return {"database": self.duckdb_database}

        config: Dict[str, Any] = {
            "host": self.clickhouse_host,
            "username": self.clickhouse_username,
            "password": self.clickhouse_password,
            "database": self.clickhouse_database,
            "secure": self.clickhouse_secure,
            "settings": {"max_execution_time": self.clickhouse_query_timeout},
        }
        if self.clickhouse_port:
            config["port"] = self.clickhouse_port
        return config


# Global settings instance
settings = Settings()
