"""
Batch Query Executor for SiteLens

Executes a batch of dashboard queries with as few store round trips as
possible:
- Requests whose query types declare the same output shape are merged into
  one UNION ALL statement and split back apart by a discriminator column
- Everything else runs on its own
- A merged statement that fails is retried as individual queries
- One result per request, in request order, whatever happens

FLOW:
-----
    requests ──► unknown types ──────────────────────────► error results
            └──► group_by_schema ─► singleton ─► run_single
                                └─► group ─► build_union_query ─► store ─► split_results
                                                  │ (any failure)
                                                  └─► run_single for every member

Nothing raises out of `BatchExecutor.execute`; failures become the `error`
field of the affected results.
"""

import logging
from collections import defaultdict, deque
from functools import reduce
from typing import Deque, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field
from sqlglot import expressions as exp

from sitelens.adapters.base import BaseAdapter
from sitelens.query.builder import DEFAULT_TIMEZONE, SimpleQueryBuilder
from sitelens.query.exceptions import QueryCompileError, ResultSplitError
from sitelens.query.placeholders import prefix_parameters, render_sql
from sitelens.query.plugins import apply_plugins
from sitelens.query.registry import QueryRegistry
from sitelens.query.schema import schema_signature
from sitelens.query.types import (
    DISCRIMINATOR_COLUMN,
    BatchOptions,
    BatchRequest,
    BatchResult,
    CompiledUnionQuery,
    ErrorKind,
    QueryFailure,
    QueryOutcome,
    QuerySuccess,
    Row,
)

logger = logging.getLogger(__name__)

SOLO_KEY_PREFIX = "__solo_"


# =============================================================================
# Configuration
# =============================================================================

class BatchConfig(BaseModel):
    """Batch executor configuration."""

    merge_enabled: bool = Field(default=True, description="Merge schema-compatible queries")
    default_timezone: str = Field(default=DEFAULT_TIMEZONE, description="Fallback timezone")


def classify_error(error: Exception) -> ErrorKind:
    """Map an exception raised while running queries to its error kind."""
    if isinstance(error, QueryCompileError):
        return ErrorKind.COMPILE_ERROR
    if isinstance(error, ResultSplitError):
        return ErrorKind.SPLIT_ERROR
    return ErrorKind.EXECUTION_ERROR


def unknown_type_failure(query_type: str) -> QueryFailure:
    return QueryFailure(kind=ErrorKind.UNKNOWN_TYPE, message=f"Unknown query type: {query_type}")


# =============================================================================
# Grouping
# =============================================================================

def group_by_schema(
    requests: Sequence[BatchRequest],
    registry: QueryRegistry
) -> Dict[str, List[BatchRequest]]:
    """
    Partition requests by the schema signature of their query type.

    - Unregistered types are left out
    - Types without a signature get a private key, `__solo_<type>`
    - The n-th repeat of a type (n >= 2) goes to `<key>#<n>`, so no group
      ever holds the same type twice and the discriminator stays unambiguous

    Groups and the requests inside them keep input order.
    """
    groups: Dict[str, List[BatchRequest]] = {}
    occurrences: Dict[str, int] = {}

    for request in requests:
        config = registry.get(request.type)
        if config is None:
            continue

        base_key = schema_signature(config) or f"{SOLO_KEY_PREFIX}{request.type}"
        occurrences[request.type] = occurrences.get(request.type, 0) + 1
        seen = occurrences[request.type]
        key = base_key if seen == 1 else f"{base_key}#{seen}"

        groups.setdefault(key, []).append(request)

    return groups


# =============================================================================
# Merged statement
# =============================================================================

def build_union_query(
    requests: Sequence[BatchRequest],
    registry: QueryRegistry,
    options: Optional[BatchOptions] = None,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> CompiledUnionQuery:
    """
    Compile a group of requests into one UNION ALL statement.

    The request at position i is compiled on its own, its parameters are
    renamed with the prefix `q{i}_`, and it is tagged with a literal
    `__query_type` column:

        SELECT 'top_pages' AS __query_type, * FROM (<compiled sql>)
        UNION ALL
        SELECT 'top_referrers' AS __query_type, * FROM (<compiled sql>)

    Raises:
        QueryCompileError: If any member fails to compile
    """
    options = options or BatchOptions()
    branches: List[exp.Select] = []
    params: Dict[str, object] = {}
    types: List[str] = []

    for index, request in enumerate(requests):
        config = registry.get(request.type)
        if config is None:
            raise QueryCompileError(f"Unknown query type: {request.type}")

        compiled = SimpleQueryBuilder(
            config,
            request,
            website_domain=options.website_domain,
            timezone=options.timezone,
            default_timezone=default_timezone,
        ).compile()

        expression, prefixed = prefix_parameters(compiled.expression, compiled.params, f"q{index}_")
        params.update(prefixed)
        types.append(request.type)
        branches.append(
            exp.Select()
            .select(exp.alias_(exp.Literal.string(request.type), DISCRIMINATOR_COLUMN), exp.Star())
            .from_(expression.subquery())
        )

    if not branches:
        raise QueryCompileError("Cannot build a merged query from an empty group")

    merged = reduce(lambda left, right: exp.union(left, right, distinct=False), branches)
    return CompiledUnionQuery(sql=render_sql(merged), params=params, types=types)


def split_results(rows: Sequence[Row], types: Sequence[str]) -> Dict[str, List[Row]]:
    """
    Route merged rows back to their query types.

    Every type gets a bucket, empty if its branch returned nothing. The
    discriminator column is removed from each row. Rows tagged with a type
    outside `types` are dropped.

    Raises:
        ResultSplitError: If a row has no discriminator column
    """
    buckets: Dict[str, List[Row]] = {query_type: [] for query_type in types}

    for position, row in enumerate(rows):
        if DISCRIMINATOR_COLUMN not in row:
            raise ResultSplitError(
                f"Row {position} of merged result has no {DISCRIMINATOR_COLUMN} column"
            )
        rest = dict(row)
        query_type = rest.pop(DISCRIMINATOR_COLUMN)
        bucket = buckets.get(query_type)
        if bucket is not None:
            bucket.append(rest)

    return buckets


# =============================================================================
# Batch Executor
# =============================================================================

class BatchExecutor:
    """
    Execute batches of analytics queries against one store.

    Usage:
        executor = BatchExecutor(registry, store)
        results = executor.execute(
            [BatchRequest(type="top_pages", project_id="site_a"),
             BatchRequest(type="top_referrers", project_id="site_a")],
            BatchOptions(website_domain="example.com"),
        )
    """

    def __init__(
        self,
        registry: QueryRegistry,
        store: BaseAdapter,
        config: Optional[BatchConfig] = None,
    ):
        self.registry = registry
        self.store = store
        self.config = config or BatchConfig()

    def execute(
        self,
        requests: Sequence[BatchRequest],
        options: Optional[BatchOptions] = None
    ) -> List[BatchResult]:
        """Run a batch; returns one result per request, in request order."""
        options = options or BatchOptions()

        if not requests:
            return []
        if len(requests) == 1:
            return [self.run_single(requests[0], options)]

        results_by_type: Dict[str, Deque[BatchResult]] = defaultdict(deque)

        for request in requests:
            if request.type not in self.registry:
                results_by_type[request.type].append(
                    unknown_type_failure(request.type).to_result(request.type)
                )

        groups = group_by_schema(requests, self.registry)
        logger.debug(f"Batch of {len(requests)} requests split into {len(groups)} groups")

        for key, group in groups.items():
            for result in self._execute_group(key, group, options):
                results_by_type[result.type].append(result)

        ordered: List[BatchResult] = []
        for request in requests:
            pending = results_by_type[request.type]
            ordered.append(pending.popleft() if pending else BatchResult(type=request.type))
        return ordered

    def run_single(
        self,
        request: BatchRequest,
        options: Optional[BatchOptions] = None
    ) -> BatchResult:
        """Run one request on its own. Never raises."""
        outcome = self._execute_single(request, options or BatchOptions())
        return self._to_result(request.type, outcome)

    # =========================================================================
    # Internals
    # =========================================================================

    def _execute_group(
        self,
        key: str,
        group: List[BatchRequest],
        options: BatchOptions
    ) -> List[BatchResult]:
        if len(group) == 1 or key.startswith(SOLO_KEY_PREFIX) or not self.config.merge_enabled:
            return [self.run_single(request, options) for request in group]

        outcome = self._execute_merged(group, options)

        if isinstance(outcome, QuerySuccess):
            return [BatchResult(type=query_type, data=rows) for query_type, rows in outcome.data.items()]

        types = ", ".join(request.type for request in group)
        logger.warning(
            f"Merged query for [{types}] failed ({outcome.kind.value}): {outcome.message}. "
            f"Running {len(group)} queries individually"
        )
        return [self.run_single(request, options) for request in group]

    def _execute_single(self, request: BatchRequest, options: BatchOptions) -> QueryOutcome:
        config = self.registry.get(request.type)
        if config is None:
            return unknown_type_failure(request.type)

        try:
            builder = SimpleQueryBuilder(
                config,
                request,
                website_domain=options.website_domain,
                timezone=options.timezone,
                default_timezone=self.config.default_timezone,
            )
            return QuerySuccess(data=builder.execute(self.store))
        except Exception as e:
            logger.error(f"Query {request.type} failed: {e}")
            return QueryFailure(kind=classify_error(e), message=str(e) or "Query failed")

    def _execute_merged(self, group: List[BatchRequest], options: BatchOptions) -> QueryOutcome:
        try:
            union = build_union_query(group, self.registry, options, self.config.default_timezone)
            result = self.store.execute(union.sql, union.params)
            logger.debug(
                f"Merged query for {union.types} returned {result.row_count} rows "
                f"in {result.execution_time_ms:.1f}ms"
            )
            buckets = split_results(result.rows, union.types)
            data = {
                query_type: self._post_process(query_type, rows, options)
                for query_type, rows in buckets.items()
            }
        except Exception as e:
            return QueryFailure(kind=classify_error(e), message=str(e) or "Merged query failed")

        return QuerySuccess(data=data)

    def _post_process(self, query_type: str, rows: List[Row], options: BatchOptions) -> List[Row]:
        config = self.registry.get(query_type)
        if config is None:
            return rows
        return apply_plugins(rows, config, options.website_domain)

    @staticmethod
    def _to_result(query_type: str, outcome: QueryOutcome) -> BatchResult:
        if isinstance(outcome, QuerySuccess):
            return BatchResult(type=query_type, data=outcome.data)
        return outcome.to_result(query_type)


def execute_batch(
    requests: Sequence[BatchRequest],
    registry: QueryRegistry,
    store: BaseAdapter,
    options: Optional[BatchOptions] = None,
    config: Optional[BatchConfig] = None,
) -> List[BatchResult]:
    """Convenience wrapper: run one batch with a throwaway executor."""
    return BatchExecutor(registry, store, config).execute(requests, options)
