"""
ClickHouse Query Parameters

Compiled queries carry typed ClickHouse parameters of the form
`{name:Type}`, e.g. `{websiteId:String}` or `{ids:Array(UInt64)}`.

sqlglot's ClickHouse dialect parses each of them into an `exp.Placeholder`
node (`this` holds the name, `kind` the type), so parameters are built,
listed and renamed on the syntax tree. String literals and comments that
merely look like placeholders are never touched.
"""

from typing import Any, Dict, List, Tuple

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from sitelens.query.exceptions import QueryCompileError

DIALECT = "clickhouse"


def parse_sql(sql: str) -> exp.Expression:
    """
    Parse one ClickHouse statement.

    Raises:
        QueryCompileError: If the SQL does not parse
    """
    try:
        return sqlglot.parse_one(sql, read=DIALECT)
    except SqlglotError as e:
        raise QueryCompileError(f"Invalid SQL: {e}") from e


def render_sql(expression: exp.Expression) -> str:
    return expression.sql(dialect=DIALECT)


def placeholder(name: str, param_type: str) -> exp.Placeholder:
    """Build a `{name:Type}` parameter node."""
    return exp.Placeholder(
        this=exp.var(name),
        kind=exp.DataType.build(param_type, dialect=DIALECT),
    )


def find_placeholders(expression: exp.Expression) -> List[exp.Placeholder]:
    """Named parameter nodes of `expression`, in source order."""
    return [node for node in expression.find_all(exp.Placeholder, bfs=False) if node.name]


def referenced_names(expression: exp.Expression) -> List[str]:
    """Distinct parameter names referenced by `expression`, in first-use order."""
    seen: Dict[str, None] = {}
    for node in find_placeholders(expression):
        seen.setdefault(node.name, None)
    return list(seen)


def prefix_parameters(
    expression: exp.Expression,
    params: Dict[str, Any],
    prefix: str
) -> Tuple[exp.Expression, Dict[str, Any]]:
    """
    Namespace every parameter of a compiled statement.

    Each placeholder `{name:Type}` becomes `{<prefix>name:Type}` and each key
    of `params` gets the same prefix, so statements compiled independently
    can share one parameter mapping without collisions.

    Args:
        expression: Compiled statement; it is copied, not modified
        params: Parameter values keyed by placeholder name
        prefix: Namespace prefix, e.g. "q0_"

    Returns:
        (renamed_expression, prefixed_params)
    """
    renamed = expression.copy()
    for node in find_placeholders(renamed):
        node.set("this", exp.var(f"{prefix}{node.name}"))
    prefixed = {f"{prefix}{key}": value for key, value in params.items()}
    return renamed, prefixed


def to_dollar_parameters(expression: exp.Expression) -> str:
    """Render a ClickHouse statement as DuckDB SQL, where parameters become `$name`."""
    return expression.sql(dialect="duckdb")
