"""
Query Layer

Query catalog, SQL compilation, post-processing and the batch executor.
"""

from sitelens.query.batch import (
    BatchConfig,
    BatchExecutor,
    build_union_query,
    execute_batch,
    group_by_schema,
    split_results,
)
from sitelens.query.registry import OutputField, PluginOptions, QueryConfig, QueryRegistry
from sitelens.query.schema import (
    are_queries_compatible,
    get_compatible_queries,
    get_schema_groups,
    schema_signature,
)
from sitelens.query.types import (
    BatchOptions,
    BatchRequest,
    BatchResult,
    CompiledQuery,
    CompiledUnionQuery,
    ErrorKind,
    QueryFilter,
)

__all__ = [
    "BatchConfig",
    "BatchExecutor",
    "BatchOptions",
    "BatchRequest",
    "BatchResult",
    "CompiledQuery",
    "CompiledUnionQuery",
    "ErrorKind",
    "OutputField",
    "PluginOptions",
    "QueryConfig",
    "QueryFilter",
    "QueryRegistry",
    "are_queries_compatible",
    "build_union_query",
    "execute_batch",
    "get_compatible_queries",
    "get_schema_groups",
    "group_by_schema",
    "schema_signature",
    "split_results",
]
