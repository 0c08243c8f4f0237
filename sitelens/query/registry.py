"""
Query Registry

Maps a query type identifier to its declarative configuration.

The registry is built once (usually from `queries.yaml`) and is read-only
afterwards, so it can be shared by concurrent batch calls without locking.
It is passed explicitly to every component that needs it.

CATALOG FORMAT:
---------------
queries:
  top_pages:
    table: analytics.events
    fields: ["path AS name", "count() AS pageviews"]
    where: ["event_name = 'screen_view'"]
    group_by: [path]
    order_by: pageviews DESC
    limit: 100
    output_fields:
      - {name: name, type: string}
      - {name: pageviews, type: number}
    plugins:
      normalize_urls: true
"""

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import sqlglot
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlglot.errors import SqlglotError

from sitelens.query.exceptions import CatalogError
from sitelens.query.placeholders import DIALECT

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "queries.yaml"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_QUERY_TYPE = re.compile(r"^[A-Za-z0-9_.\-]+$")
_TABLE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def validate_sql_fragment(template: str, fragment: str) -> None:
    """
    Check that `fragment` parses as ClickHouse SQL once placed in `template`.

    Query parameters such as `{timezone:String}` are part of the dialect and
    parse as placeholders.

    Raises:
        ValueError: If the fragment does not parse
    """
    try:
        sqlglot.parse_one(template.format(fragment=fragment), read=DIALECT)
    except SqlglotError as e:
        raise ValueError(f"Invalid SQL fragment {fragment!r}: {e}")


# =============================================================================
# Configuration models
# =============================================================================

class OutputField(BaseModel):
    """One column of a query's declared output shape."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str


class PluginOptions(BaseModel):
    """Post-processing steps applied to a query's rows."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    normalize_urls: bool = False
    normalize_referrers: bool = False
    normalize_geo: bool = False
    merge_duplicates: bool = False
    key_field: str = "name"
    # columns summed when duplicates merge; None sums every numeric column
    additive_fields: Optional[List[str]] = None


class QueryConfig(BaseModel):
    """
    Declarative definition of one query type.

    `output_fields` describes the shape of the rows the query returns.
    Queries that declare the same shape can be merged into one UNION ALL
    statement; queries that declare none always run on their own.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str
    description: Optional[str] = None
    table: str = "analytics.events"
    fields: List[str] = Field(..., min_length=1)
    where: List[str] = Field(default=[])
    group_by: List[str] = Field(default=[])
    order_by: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    time_field: str = "time"
    tenant_column: str = "client_id"
    allowed_filters: List[str] = Field(default=[])
    output_fields: Optional[List[OutputField]] = None
    plugins: PluginOptions = Field(default_factory=PluginOptions)

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        # query types are embedded as SQL string literals in merged queries
        if not _QUERY_TYPE.match(value):
            raise ValueError(f"Invalid query type: {value!r}")
        return value

    @field_validator("table")
    @classmethod
    def _check_table(cls, value: str) -> str:
        if not _TABLE.match(value):
            raise ValueError(f"Invalid table name: {value!r}")
        return value

    @field_validator("time_field", "tenant_column")
    @classmethod
    def _check_column(cls, value: str) -> str:
        if not _IDENTIFIER.match(value):
            raise ValueError(f"Invalid column name: {value!r}")
        return value

    @field_validator("allowed_filters")
    @classmethod
    def _check_filter_columns(cls, values: List[str]) -> List[str]:
        for value in values:
            if not _IDENTIFIER.match(value):
                raise ValueError(f"Invalid filter column: {value!r}")
        return values

    @field_validator("fields")
    @classmethod
    def _check_fields(cls, values: List[str]) -> List[str]:
        for value in values:
            validate_sql_fragment("SELECT {fragment}", value)
        return values

    @field_validator("where")
    @classmethod
    def _check_where(cls, values: List[str]) -> List[str]:
        for value in values:
            validate_sql_fragment("SELECT 1 WHERE {fragment}", value)
        return values

    @field_validator("group_by")
    @classmethod
    def _check_group_by(cls, values: List[str]) -> List[str]:
        for value in values:
            validate_sql_fragment("SELECT 1 GROUP BY {fragment}", value)
        return values

    @field_validator("order_by")
    @classmethod
    def _check_order_by(cls, value: Optional[str]) -> Optional[str]:
        if value:
            validate_sql_fragment("SELECT 1 ORDER BY {fragment}", value)
        return value


# =============================================================================
# Registry
# =============================================================================

class QueryRegistry(Mapping):
    """Immutable mapping of query type -> QueryConfig."""

    def __init__(self, configs: Iterable[QueryConfig] = ()):
        entries: Dict[str, QueryConfig] = {}
        for config in configs:
            if config.type in entries:
                raise CatalogError(f"Duplicate query type: {config.type}")
            entries[config.type] = config
        self._configs = MappingProxyType(entries)

    def __getitem__(self, query_type: str) -> QueryConfig:
        return self._configs[query_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    def __repr__(self) -> str:
        return f"QueryRegistry({list(self._configs)})"

    def types(self) -> List[str]:
        return list(self._configs)

    @classmethod
    def from_dict(cls, catalog: Dict[str, Any]) -> "QueryRegistry":
        """Build a registry from a parsed catalog document."""
        queries = (catalog or {}).get("queries") or {}
        if not isinstance(queries, dict):
            raise CatalogError("'queries' must be a mapping of type -> definition")

        configs = []
        for query_type, definition in queries.items():
            try:
                configs.append(QueryConfig(type=query_type, **(definition or {})))
            except (ValidationError, TypeError) as e:
                raise CatalogError(f"Invalid query '{query_type}': {e}")

        return cls(configs)

    @classmethod
    def from_catalog(cls, path: Union[str, Path, None] = None) -> "QueryRegistry":
        """Load a registry from a YAML catalog file."""
        catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
        try:
            with open(catalog_path, "r", encoding="utf-8") as f:
                catalog = yaml.safe_load(f)
        except FileNotFoundError:
            raise CatalogError(f"Query catalog not found: {catalog_path}")
        except yaml.YAMLError as e:
            raise CatalogError(f"Query catalog is not valid YAML: {e}")

        registry = cls.from_dict(catalog)
        logger.info(f"Loaded {len(registry)} query types from {catalog_path}")
        return registry
