"""
Batch Query Types

Request, result and intermediate types shared by the query layer.

Pydantic models describe what crosses the API boundary (requests, options,
results). Plain dataclasses describe the artifacts the executor produces
internally (compiled statements, outcomes).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import expressions as exp

Row = Dict[str, Any]

# Synthetic literal column used to route merged rows back to their query type
DISCRIMINATOR_COLUMN = "__query_type"


# =============================================================================
# Requests
# =============================================================================

class QueryFilter(BaseModel):
    """A dashboard filter applied to a single query."""

    model_config = ConfigDict(frozen=True)

    field: str
    op: Literal["eq", "ne", "contains", "not_contains", "starts_with"] = "eq"
    value: Any = None


class BatchRequest(BaseModel):
    """
    One query request inside a batch.

    Well-known fields cover what every analytics query needs. Anything
    query-specific travels in `params` and is bound when the compiled SQL
    references it.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Registered query type")
    project_id: Optional[str] = Field(default=None, description="Website/tenant id")
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    timezone: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    filters: List[QueryFilter] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict)


class BatchOptions(BaseModel):
    """Options shared by every request of a batch call."""

    model_config = ConfigDict(frozen=True)

    website_domain: Optional[str] = None
    timezone: Optional[str] = None


# =============================================================================
# Results
# =============================================================================

class ErrorKind(str, Enum):
    """Why a request did not produce data."""
    UNKNOWN_TYPE = "unknown_type"
    COMPILE_ERROR = "compile_error"
    EXECUTION_ERROR = "execution_error"
    SPLIT_ERROR = "split_error"


class BatchResult(BaseModel):
    """
    Result of one request.

    `error` is the only success signal: an empty `data` list without an
    error is a valid result (e.g. a date range with no events).
    """

    type: str
    data: List[Row] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[ErrorKind] = None

    @property
    def success(self) -> bool:
        return self.error is None


# =============================================================================
# Internal artifacts
# =============================================================================

@dataclass(frozen=True)
class CompiledQuery:
    """Parameterized SQL for one request, with the syntax tree it was rendered from."""
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)
    expression: Optional[exp.Expression] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CompiledUnionQuery:
    """
    Merged statement for a group of requests.

    `types` is one-to-one with the UNION ALL branches, in branch order.
    """
    sql: str
    params: Dict[str, Any]
    types: List[str]


@dataclass(frozen=True)
class QuerySuccess:
    data: Any


@dataclass(frozen=True)
class QueryFailure:
    kind: ErrorKind
    message: str

    def to_result(self, query_type: str) -> BatchResult:
        return BatchResult(type=query_type, data=[], error=self.message, error_code=self.kind)


QueryOutcome = Union[QuerySuccess, QueryFailure]
