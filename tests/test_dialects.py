from datetime import datetime, timedelta, timezone

import pytest

from ensemble import ConfigurationError, MySQLDialect, PostgresDialect, SQLiteDialect, get_dialect


def test_get_dialect_resolves_aliases() -> None:
    assert isinstance(get_dialect("sqlite"), SQLiteDialect)
    assert isinstance(get_dialect("PostgreSQL"), PostgresDialect)
    assert isinstance(get_dialect("postgres"), PostgresDialect)
    assert isinstance(get_dialect("mysql"), MySQLDialect)
    with pytest.raises(ConfigurationError):
        get_dialect("oracle")
    with pytest.raises(ConfigurationError):
        get_dialect("")


def test_placeholder_styles() -> None:
    assert SQLiteDialect().placeholder(3) == "?"
    assert PostgresDialect().placeholder(3) == "$3"
    assert MySQLDialect().placeholder(3) == "%s"


def test_identifier_quoting_validates_names() -> None:
    assert SQLiteDialect().quote_identifier("users") == '"users"'
    assert MySQLDialect().quote_identifier("users") == "`users`"
    with pytest.raises(ValueError):
        PostgresDialect().quote_identifier('users"; DROP TABLE x; --')


def test_capabilities() -> None:
    assert PostgresDialect().capabilities.supports_returning is True
    assert SQLiteDialect().capabilities.supports_returning is False
    assert SQLiteDialect().capabilities.requires_limit_for_offset is True
    assert PostgresDialect().unbounded_limit() is None
    assert SQLiteDialect().unbounded_limit() == -1


def test_limit_clause_renders_given_placeholders() -> None:
    dialect = PostgresDialect()
    assert dialect.limit_clause("$1", "$2") == "LIMIT $1 OFFSET $2"
    assert dialect.limit_clause(None, "$1") == "OFFSET $1"
    assert dialect.limit_clause(None, None) == ""


def test_sqlite_truncate_resets_sequence_behind_a_guard() -> None:
    statements = SQLiteDialect().truncate("users")
    assert [s.sql for s in statements] == [
        'DELETE FROM "users"',
        "DELETE FROM sqlite_sequence WHERE name = ?",
    ]
    assert statements[1].params == ["users"]
    assert statements[0].guard is None
    assert "sqlite_sequence" in statements[1].guard


def test_server_truncate_statements() -> None:
    assert [s.sql for s in PostgresDialect().truncate("users")] == ['TRUNCATE TABLE "users" RESTART IDENTITY']
    assert [s.sql for s in MySQLDialect().truncate("users")] == ["TRUNCATE TABLE `users`"]


def test_last_insert_id_statements() -> None:
    assert SQLiteDialect().last_insert_id("id").sql == 'SELECT last_insert_rowid() AS "id"'
    assert MySQLDialect().last_insert_id("id").sql == "SELECT LAST_INSERT_ID() AS `id`"
    with pytest.raises(NotImplementedError):
        PostgresDialect().last_insert_id("id")


def test_datetime_parameters_are_adapted_per_driver() -> None:
    moment = datetime(2024, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    assert SQLiteDialect().adapt_param(moment) == "2024-01-01T10:00:00+02:00"
    assert MySQLDialect().adapt_param(moment) == datetime(2024, 1, 1, 8, 0)
    assert PostgresDialect().adapt_param(moment) is moment
    assert SQLiteDialect().adapt_params([1, "a"]) == [1, "a"]
