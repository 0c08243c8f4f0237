"""
Query API Endpoints

Batch execution and query-type introspection for dashboards.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from sitelens.core.config import Settings
from sitelens.core.dependencies import get_api_key, get_executor, get_registry, get_settings
from sitelens.errors import batch_too_large, query_type_not_found
from sitelens.query.batch import BatchExecutor
from sitelens.query.registry import QueryRegistry
from sitelens.query.schema import (
    are_queries_compatible,
    get_compatible_queries,
    get_schema_groups,
    schema_signature,
)
from sitelens.query.types import BatchOptions, BatchRequest, BatchResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/query", tags=["Query"], dependencies=[Depends(get_api_key)])


class BatchQueryPayload(BaseModel):
    """Batch query request body."""

    queries: List[BatchRequest] = Field(default_factory=list)
    website_domain: Optional[str] = None
    timezone: Optional[str] = None


class BatchQueryResponse(BaseModel):
    results: List[BatchResult]


class QueryTypeInfo(BaseModel):
    type: str
    description: Optional[str] = None
    signature: Optional[str] = None


@router.post("/batch", response_model=BatchQueryResponse, response_model_exclude_none=True)
def run_batch(
    payload: BatchQueryPayload,
    executor: BatchExecutor = Depends(get_executor),
    settings: Settings = Depends(get_settings),
):
    """
    Execute several queries in one call.

    Results come back in request order. A failing query never fails the
    call: check each result's `error` field.
    """
    if len(payload.queries) > settings.batch_max_queries:
        raise batch_too_large(len(payload.queries), settings.batch_max_queries)

    options = BatchOptions(website_domain=payload.website_domain, timezone=payload.timezone)
    results = executor.execute(payload.queries, options)

    failed = sum(1 for r in results if r.error is not None)
    if failed:
        logger.info(f"Batch of {len(results)} queries completed with {failed} failures")
    return BatchQueryResponse(results=results)


@router.post("", response_model=BatchResult, response_model_exclude_none=True)
def run_query(
    request: BatchRequest,
    website_domain: Optional[str] = Query(default=None),
    timezone: Optional[str] = Query(default=None, description="Used when the request sets no timezone"),
    executor: BatchExecutor = Depends(get_executor),
):
    """Execute a single query."""
    return executor.run_single(request, BatchOptions(website_domain=website_domain, timezone=timezone))


# =============================================================================
# Introspection
# =============================================================================

@router.get("/types", response_model=List[QueryTypeInfo])
def list_query_types(registry: QueryRegistry = Depends(get_registry)):
    """List registered query types and their schema signatures."""
    return [
        QueryTypeInfo(type=query_type, description=config.description, signature=schema_signature(config))
        for query_type, config in registry.items()
    ]


@router.get("/compatibility")
def check_compatibility(
    a: str = Query(..., description="First query type"),
    b: str = Query(..., description="Second query type"),
    registry: QueryRegistry = Depends(get_registry),
):
    """Whether two query types can be merged into one statement."""
    return {"a": a, "b": b, "compatible": are_queries_compatible(registry, a, b)}


@router.get("/types/{query_type}/compatible", response_model=List[str])
def list_compatible_types(query_type: str, registry: QueryRegistry = Depends(get_registry)):
    """Other query types sharing this type's output schema."""
    if query_type not in registry:
        raise query_type_not_found(query_type, registry.types())
    return get_compatible_queries(registry, query_type)


@router.get("/schema-groups", response_model=Dict[str, List[str]])
def list_schema_groups(registry: QueryRegistry = Depends(get_registry)):
    """Every output schema signature with the query types declaring it."""
    return get_schema_groups(registry)
