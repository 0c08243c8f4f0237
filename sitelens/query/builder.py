"""
Simple Query Builder

Compiles a declarative QueryConfig plus a BatchRequest into parameterized
ClickHouse SQL, and runs it end to end (compile, execute, post-process).

Generated shape:

    SELECT <fields> FROM <table>
    WHERE <tenant_column> = {websiteId:String}
      [AND <time_field> >= {startDate:String}]
      [AND <time_field> <= {endDate:String}]
      [AND (<static where>) ...]
      [AND <filter> ...]
    [GROUP BY ...] [ORDER BY ...] [LIMIT {limit:UInt32}]

The statement is assembled as a sqlglot syntax tree and rendered in the
ClickHouse dialect. Every value is bound as a `{name:Type}` parameter.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from sitelens.adapters.base import BaseAdapter
from sitelens.query.exceptions import QueryCompileError
from sitelens.query.placeholders import DIALECT, placeholder, referenced_names, render_sql
from sitelens.query.plugins import apply_plugins
from sitelens.query.registry import QueryConfig
from sitelens.query.types import BatchRequest, CompiledQuery, QueryFilter, Row

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_FILTER_OPERATORS = {
    "eq": exp.EQ,
    "ne": exp.NEQ,
    "contains": exp.Like,
    "not_contains": lambda this, expression: exp.Not(this=exp.Like(this=this, expression=expression)),
    "starts_with": exp.Like,
}


def _end_of_day(value: str) -> str:
    """Make a date-only upper bound inclusive of the whole day."""
    if _DATE_ONLY.match(value):
        return f"{value} 23:59:59"
    return value


class SimpleQueryBuilder:
    """
    Builds and runs the SQL for one request of one query type.

    Timezone precedence: the request's own timezone, then the batch-level
    `timezone`, then `default_timezone`.

    Usage:
        builder = SimpleQueryBuilder(config, request, website_domain="example.com")
        compiled = builder.compile()
        rows = builder.execute(store)
    """

    def __init__(
        self,
        config: QueryConfig,
        request: BatchRequest,
        website_domain: Optional[str] = None,
        timezone: Optional[str] = None,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self.config = config
        self.request = request
        self.website_domain = website_domain
        self.timezone = request.timezone or timezone or default_timezone

    # =========================================================================
    # Compilation
    # =========================================================================

    def compile(self) -> CompiledQuery:
        """
        Compile the request into SQL and the parameters it references.

        Raises:
            QueryCompileError: If the request cannot produce valid SQL
        """
        config = self.config
        request = self.request

        if not request.project_id:
            raise QueryCompileError(f"project_id is required for query type '{config.type}'")

        # Extension params first so well-known names cannot be overridden
        values: Dict[str, Any] = dict(request.params)
        values["timezone"] = self.timezone

        conditions: List[exp.Expression] = [
            exp.EQ(this=exp.column(config.tenant_column), expression=placeholder("websiteId", "String"))
        ]
        values["websiteId"] = request.project_id

        if request.start_date:
            conditions.append(
                exp.GTE(this=exp.column(config.time_field), expression=placeholder("startDate", "String"))
            )
            values["startDate"] = request.start_date
        if request.end_date:
            conditions.append(
                exp.LTE(this=exp.column(config.time_field), expression=placeholder("endDate", "String"))
            )
            values["endDate"] = _end_of_day(request.end_date)

        try:
            conditions.extend(exp.paren(exp.condition(c, dialect=DIALECT)) for c in config.where)

            for index, query_filter in enumerate(request.filters):
                condition, name, value = self._compile_filter(query_filter, index)
                conditions.append(condition)
                values[name] = value

            query = (
                exp.Select()
                .select(*config.fields, dialect=DIALECT)
                .from_(config.table, dialect=DIALECT)
                .where(exp.and_(*conditions))
            )
            if config.group_by:
                query = query.group_by(*config.group_by, dialect=DIALECT)
            if config.order_by:
                query = query.order_by(config.order_by, dialect=DIALECT)
        except SqlglotError as e:
            raise QueryCompileError(f"Failed to build SQL for query type '{config.type}': {e}") from e

        limit = request.limit or config.limit
        if limit:
            query = query.limit(exp.Limit(expression=placeholder("limit", "UInt32")))
            values["limit"] = limit

        referenced = referenced_names(query)
        missing = [name for name in referenced if name not in values]
        if missing:
            raise QueryCompileError(
                f"Missing value for parameter(s) {', '.join(missing)} in query type '{config.type}'"
            )

        return CompiledQuery(
            sql=render_sql(query),
            params={name: values[name] for name in referenced},
            expression=query,
        )

    def _compile_filter(self, query_filter: QueryFilter, index: int) -> Tuple[exp.Expression, str, Any]:
        """Compile one dashboard filter into (condition, param_name, param_value)."""
        if query_filter.field not in self.config.allowed_filters:
            raise QueryCompileError(
                f"Filtering on '{query_filter.field}' is not allowed for query type '{self.config.type}'"
            )

        operator = _FILTER_OPERATORS[query_filter.op]
        name = f"filter{index}"
        value = "" if query_filter.value is None else str(query_filter.value)

        if query_filter.op in ("contains", "not_contains"):
            value = f"%{value}%"
        elif query_filter.op == "starts_with":
            value = f"{value}%"

        condition = operator(this=exp.column(query_filter.field), expression=placeholder(name, "String"))
        return condition, name, value

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(self, store: BaseAdapter) -> List[Row]:
        """Compile, run against `store` and post-process the rows."""
        compiled = self.compile()
        logger.debug(f"Executing {self.config.type}: {compiled.sql}")

        result = store.execute(compiled.sql, compiled.params)
        return apply_plugins(result.rows, self.config, self.website_domain)
