"""
Tests for ClickHouse query parameter handling on sqlglot syntax trees.
"""

import pytest
from sqlglot import expressions as exp

from sitelens.query.exceptions import QueryCompileError
from sitelens.query.placeholders import (
    find_placeholders,
    parse_sql,
    placeholder,
    prefix_parameters,
    referenced_names,
    render_sql,
    to_dollar_parameters,
)


class TestParse:
    """Tests for parse_sql and find_placeholders."""

    def test_placeholders_become_nodes(self):
        expression = parse_sql("SELECT * FROM t WHERE a = {websiteId:String} LIMIT {limit:UInt32}")
        found = find_placeholders(expression)

        assert [node.name for node in found] == ["websiteId", "limit"]
        assert all(isinstance(node, exp.Placeholder) for node in found)

    def test_parameterized_types(self):
        expression = parse_sql("SELECT * FROM t WHERE has({ids:Array(UInt64)}, id)")
        assert "{ids: Array(UInt64)}" in render_sql(expression)

    def test_string_literals_are_not_parameters(self):
        expression = parse_sql("SELECT '{fake:String}' AS s FROM t WHERE a = {real:String}")
        assert referenced_names(expression) == ["real"]
        assert "'{fake:String}'" in render_sql(expression)

    def test_referenced_names_are_distinct(self):
        expression = parse_sql("SELECT {b:String} AS x, {a:String} AS y, {b:String} AS z")
        assert referenced_names(expression) == ["b", "a"]

    def test_invalid_sql_raises_compile_error(self):
        with pytest.raises(QueryCompileError, match="Invalid SQL"):
            parse_sql("SELECT * FROM t WHERE a = {name:String")


class TestBuild:
    """Tests for placeholder construction."""

    def test_renders_as_clickhouse_parameter(self):
        condition = exp.EQ(this=exp.column("client_id"), expression=placeholder("websiteId", "String"))
        assert render_sql(condition) == "client_id = {websiteId: String}"

    def test_type_is_not_made_nullable(self):
        assert render_sql(placeholder("limit", "UInt32")) == "{limit: UInt32}"


class TestPrefixParameters:
    """Tests for prefix_parameters."""

    def test_prefixes_tree_and_params(self):
        expression = parse_sql(
            "SELECT * FROM t WHERE a = {websiteId:String} AND b = {websiteIdx:String}"
        )
        renamed, params = prefix_parameters(
            expression, {"websiteId": "site_a", "websiteIdx": "other"}, "q1_"
        )
        assert referenced_names(renamed) == ["q1_websiteId", "q1_websiteIdx"]
        assert params == {"q1_websiteId": "site_a", "q1_websiteIdx": "other"}

    def test_original_tree_is_not_modified(self):
        expression = parse_sql("SELECT * FROM t WHERE a = {websiteId:String}")
        prefix_parameters(expression, {}, "q0_")
        assert referenced_names(expression) == ["websiteId"]

    def test_leaves_literals_untouched(self):
        expression = parse_sql("SELECT '{websiteId:String}' AS s FROM t WHERE a = {websiteId:String}")
        renamed, _ = prefix_parameters(expression, {}, "q0_")
        sql = render_sql(renamed)

        assert "'{websiteId:String}'" in sql
        assert "a = {q0_websiteId: String}" in sql


class TestDollarParameters:
    """Tests for DuckDB rendering."""

    def test_parameters_render_with_dollar_sign(self):
        expression = parse_sql("SELECT * FROM t WHERE a = {q0_id:String} LIMIT {q0_limit:UInt32}")
        assert to_dollar_parameters(expression) == "SELECT * FROM t WHERE a = $q0_id LIMIT $q0_limit"
