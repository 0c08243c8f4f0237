"""
Pytest configuration and shared fixtures for SiteLens tests.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from sitelens.adapters.base import AdapterResult, BaseAdapter, QueryError
from sitelens.core.config import Settings
from sitelens.query.registry import QueryRegistry
from sitelens.query.types import DISCRIMINATOR_COLUMN

_BRANCH_TYPE = re.compile(r"SELECT '([^']+)' AS " + DISCRIMINATOR_COLUMN)
_FROM_TABLE = re.compile(r"FROM ([A-Za-z_][A-Za-z0-9_.]*)")
_UNION_ALL = re.compile(r"\s+UNION ALL\s+")

BREAKDOWN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "pageviews", "type": "number"},
]

SAMPLE_CATALOG = {
    "queries": {
        "top_pages": {
            "table": "pages",
            "fields": ["url_path AS name", "count() AS pageviews"],
            "group_by": ["url_path"],
            "order_by": "pageviews DESC",
            "limit": 10,
            "allowed_filters": ["country"],
            "output_fields": BREAKDOWN_FIELDS,
            "plugins": {"normalize_urls": True, "merge_duplicates": True},
        },
        "top_referrers": {
            "table": "referrers",
            "fields": ["referrer AS name", "count() AS pageviews"],
            "group_by": ["referrer"],
            "output_fields": BREAKDOWN_FIELDS,
            "plugins": {"normalize_referrers": True},
        },
        "countries": {
            "table": "geo",
            "fields": ["country AS name", "uniq(session_id) AS visitors"],
            "group_by": ["country"],
            "output_fields": [
                {"name": "name", "type": "string"},
                {"name": "visitors", "type": "number"},
            ],
            "plugins": {"normalize_geo": True},
        },
        "summary": {
            "table": "totals",
            "fields": ["count() AS pageviews", "uniq(session_id) AS visitors"],
        },
        "over_time": {
            "table": "timeline",
            "fields": ["toDate(time, {timezone:String}) AS bucket", "count() AS pageviews"],
            "group_by": ["bucket"],
        },
    }
}

SAMPLE_ROWS = {
    "pages": [
        {"name": "https://example.com/blog/", "pageviews": 3},
        {"name": "/blog", "pageviews": 2},
        {"name": "/", "pageviews": 7},
    ],
    "referrers": [
        {"name": "https://www.google.com/search?q=x", "pageviews": 4},
        {"name": "", "pageviews": 9},
    ],
    "geo": [{"name": "de", "visitors": 5}],
    "totals": [{"pageviews": 12, "visitors": 8}],
    "timeline": [{"bucket": "2024-01-01", "pageviews": 12}],
}


def _result(rows: List[Dict[str, Any]]) -> AdapterResult:
    columns = list(rows[0]) if rows else []
    return AdapterResult(rows=rows, columns=columns, engine=FakeStore.ENGINE)


class FakeStore(BaseAdapter):
    """
    In-memory store double.

    Answers single queries with the rows of the table they select from and
    merged queries with the tagged rows of every branch. Records each call.
    """

    ENGINE = "fake"

    def __init__(
        self,
        rows_by_table: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        fail_merged: bool = False,
        fail_tables: Iterable[str] = (),
        untagged_merged: bool = False,
    ):
        super().__init__({})
        self.rows_by_table = SAMPLE_ROWS if rows_by_table is None else rows_by_table
        self.fail_merged = fail_merged
        self.fail_tables = set(fail_tables)
        self.untagged_merged = untagged_merged
        self.calls: List[Dict[str, Any]] = []
        self._connected = True

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def health_check(self) -> bool:
        return self._connected

    @property
    def merged_calls(self) -> List[Dict[str, Any]]:
        return [call for call in self.calls if DISCRIMINATOR_COLUMN in call["sql"]]

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> AdapterResult:
        self.calls.append({"sql": sql, "params": dict(params or {})})

        if DISCRIMINATOR_COLUMN not in sql:
            return _result([dict(row) for row in self._rows_for(sql)])

        if self.fail_merged:
            raise QueryError("merged statement rejected", engine=self.ENGINE)

        rows = []
        for branch in _UNION_ALL.split(sql):
            query_type = _BRANCH_TYPE.search(branch).group(1)
            for row in self._rows_for(branch):
                if self.untagged_merged:
                    rows.append(dict(row))
                else:
                    rows.append({DISCRIMINATOR_COLUMN: query_type, **row})
        return _result(rows)

    def _rows_for(self, sql: str) -> List[Dict[str, Any]]:
        table = _FROM_TABLE.search(sql).group(1)
        if table in self.fail_tables:
            raise QueryError(f"table {table} is unavailable", engine=self.ENGINE)
        return self.rows_by_table.get(table, [])


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def registry():
    """Registry with two merge-compatible types and three that are not."""
    return QueryRegistry.from_dict(SAMPLE_CATALOG)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_store():
    """Factory for stores with custom rows or failure modes."""
    return FakeStore


@pytest.fixture
def api_key():
    """Return a valid test API key."""
    return "dev-key-123"


@pytest.fixture
def settings():
    return Settings(api_keys="dev-key-123", batch_max_queries=5, _env_file=None)


@pytest.fixture
def client(settings, registry, store):
    """Create a test client for the FastAPI app with an injected store."""
    from sitelens.main import create_app

    app = create_app(settings=settings, registry=registry, store=store)
    with TestClient(app) as test_client:
        yield test_client
