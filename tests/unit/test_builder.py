"""
Tests for SimpleQueryBuilder.
"""

import pytest
from sqlglot import expressions as exp

from sitelens.query.builder import SimpleQueryBuilder
from sitelens.query.exceptions import QueryCompileError
from sitelens.query.placeholders import find_placeholders, parse_sql, referenced_names, render_sql
from sitelens.query.types import BatchRequest, QueryFilter


def compile_request(registry, **kwargs):
    request = BatchRequest(**kwargs)
    return SimpleQueryBuilder(registry[request.type], request).compile()


class TestCompile:
    """Tests for SQL compilation."""

    def test_full_shape(self, registry):
        compiled = compile_request(
            registry,
            type="top_pages",
            project_id="site_a",
            start_date="2024-01-01",
            end_date="2024-01-31",
        )
        expression = parse_sql(compiled.sql)

        assert compiled.sql.startswith("SELECT url_path AS name, ")
        assert "FROM pages WHERE client_id = {websiteId: String}" in compiled.sql
        assert "AND time >= {startDate: String} AND time <= {endDate: String}" in compiled.sql
        assert compiled.sql.endswith("GROUP BY url_path ORDER BY pageviews DESC LIMIT {limit: UInt32}")
        assert set(referenced_names(expression)) == {"websiteId", "startDate", "endDate", "limit"}
        assert compiled.params == {
            "websiteId": "site_a",
            "startDate": "2024-01-01",
            "endDate": "2024-01-31 23:59:59",
            "limit": 10,
        }

    def test_sql_is_rendered_from_the_expression(self, registry):
        compiled = compile_request(registry, type="top_pages", project_id="site_a")
        assert isinstance(compiled.expression, exp.Select)
        assert render_sql(compiled.expression) == compiled.sql

    def test_request_limit_overrides_catalog_limit(self, registry):
        compiled = compile_request(registry, type="top_pages", project_id="site_a", limit=3)
        assert compiled.params["limit"] == 3

    def test_only_referenced_params_are_returned(self, registry):
        compiled = compile_request(
            registry, type="summary", project_id="site_a", params={"unused": 1}
        )
        assert compiled.params == {"websiteId": "site_a"}
        assert "LIMIT" not in compiled.sql

    def test_end_date_with_time_is_kept(self, registry):
        compiled = compile_request(
            registry, type="summary", project_id="site_a", end_date="2024-01-31 12:00:00"
        )
        assert compiled.params["endDate"] == "2024-01-31 12:00:00"

    def test_project_id_is_required(self, registry):
        with pytest.raises(QueryCompileError, match="project_id"):
            compile_request(registry, type="summary")

    def test_static_where_is_parenthesised(self):
        from sitelens.query.registry import QueryConfig

        config = QueryConfig(type="views", table="events", fields=["count() AS c"], where=["a = 1 OR b = 2"])
        compiled = SimpleQueryBuilder(config, BatchRequest(type="views", project_id="p")).compile()
        assert "AND (a = 1 OR b = 2)" in compiled.sql

    def test_params_bind_custom_placeholders(self):
        from sitelens.query.registry import QueryConfig

        config = QueryConfig(type="events", table="events", fields=["count() AS c"], where=["event_name = {event:String}"])
        request = BatchRequest(type="events", project_id="p", params={"event": "signup"})
        compiled = SimpleQueryBuilder(config, request).compile()
        assert compiled.params == {"websiteId": "p", "event": "signup"}

    def test_missing_custom_param_raises(self):
        from sitelens.query.registry import QueryConfig

        config = QueryConfig(type="events", table="events", fields=["count() AS c"], where=["event_name = {event:String}"])
        with pytest.raises(QueryCompileError, match="event"):
            SimpleQueryBuilder(config, BatchRequest(type="events", project_id="p")).compile()

    def test_well_known_params_cannot_be_overridden(self, registry):
        compiled = compile_request(
            registry, type="summary", project_id="site_a", params={"websiteId": "site_b"}
        )
        assert compiled.params["websiteId"] == "site_a"


class TestTimezone:
    """Tests for timezone precedence."""

    def _timezone(self, registry, request_tz=None, batch_tz=None, default_tz="UTC"):
        request = BatchRequest(type="over_time", project_id="site_a", timezone=request_tz)
        builder = SimpleQueryBuilder(
            registry["over_time"], request, timezone=batch_tz, default_timezone=default_tz
        )
        return builder.compile().params["timezone"]

    def test_request_timezone_wins(self, registry):
        assert self._timezone(registry, "Asia/Tokyo", "Europe/Berlin") == "Asia/Tokyo"

    def test_batch_timezone_used_when_request_has_none(self, registry):
        assert self._timezone(registry, None, "Europe/Berlin") == "Europe/Berlin"

    def test_default_timezone(self, registry):
        assert self._timezone(registry, default_tz="America/New_York") == "America/New_York"


class TestFilters:
    """Tests for dashboard filters."""

    @pytest.mark.parametrize(
        "op, node_type, negated, value",
        [
            ("eq", exp.EQ, False, "DE"),
            ("ne", exp.NEQ, False, "DE"),
            ("contains", exp.Like, False, "%DE%"),
            ("not_contains", exp.Like, True, "%DE%"),
            ("starts_with", exp.Like, False, "DE%"),
        ],
    )
    def test_operators(self, registry, op, node_type, negated, value):
        compiled = compile_request(
            registry,
            type="top_pages",
            project_id="site_a",
            filters=[QueryFilter(field="country", op=op, value="DE")],
        )
        parameter = next(p for p in find_placeholders(compiled.expression) if p.name == "filter0")
        condition = parameter.parent

        assert isinstance(condition, node_type)
        assert condition.this.name == "country"
        assert isinstance(condition.parent, exp.Not) is negated
        assert "{filter0: String}" in compiled.sql
        assert compiled.params["filter0"] == value

    def test_filter_on_disallowed_column(self, registry):
        with pytest.raises(QueryCompileError, match="not allowed"):
            compile_request(
                registry,
                type="top_pages",
                project_id="site_a",
                filters=[QueryFilter(field="url_path", value="/")],
            )


class TestExecute:
    """Tests for end-to-end single execution."""

    def test_execute_applies_plugins(self, registry, store):
        request = BatchRequest(type="top_pages", project_id="site_a")
        rows = SimpleQueryBuilder(registry["top_pages"], request).execute(store)

        assert rows == [
            {"name": "/blog", "pageviews": 5},
            {"name": "/", "pageviews": 7},
        ]
        assert len(store.calls) == 1
