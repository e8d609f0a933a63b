"""
Tests for the recordbase CLI.

Run with: pytest src/recordbase/cli_test.py -v
"""

from unittest.mock import MagicMock, patch

import pytest

from recordbase import cli
from recordbase.conftest import FakeConnection


@pytest.fixture
def cli_conn(fake_conn):
    """Patch db.connect so the CLI runs against the fake connection."""
    with patch("recordbase.cli.db.connect") as mock_connect:
        context = MagicMock()
        context.__enter__.return_value = fake_conn
        context.__exit__.return_value = False
        mock_connect.return_value = context
        yield fake_conn


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("recordbase.cli.configure_logging"):
        yield


class TestParseWhere:
    def test_pairs(self):
        assert cli.parse_where(["name=Ann", "role=a=b"]) == {"name": "Ann", "role": "a=b"}

    @pytest.mark.parametrize("pair", ["name", "=Ann"])
    def test_invalid(self, pair):
        with pytest.raises(ValueError):
            cli.parse_where([pair])


class TestCommands:
    def test_columns(self, cli_conn, capsys):
        assert cli.main(["columns", "users"]) == 0

        out = capsys.readouterr().out
        assert "name" in out
        assert "email" in out

    def test_list_with_where(self, cli_conn, capsys):
        cli_conn.respond([{"id": 1, "name": "Ann", "email": "a@x.com"}])

        assert cli.main(["list", "users", "--where", "name=Ann"]) == 0

        assert cli_conn.statements == [('SELECT * FROM "users" WHERE "name" = %s', ["Ann"])]
        assert "a@x.com" in capsys.readouterr().out

    def test_list_empty(self, cli_conn, capsys):
        assert cli.main(["list", "users"]) == 0
        assert "No rows" in capsys.readouterr().out

    def test_show_not_found(self, cli_conn, capsys):
        assert cli.main(["show", "users", "9"]) == 1
        assert "record not found" in capsys.readouterr().out

    def test_delete_with_yes(self, cli_conn):
        cli_conn.respond([{"id": 3, "name": "Ann", "email": ""}], [{"id": 3}])

        assert cli.main(["delete", "users", "3", "--yes"]) == 0

        assert cli_conn.sql[-1] == 'DELETE FROM "users" WHERE "id" = %s'

    def test_delete_cancelled(self, cli_conn):
        cli_conn.respond([{"id": 3, "name": "Ann", "email": ""}])

        with patch("recordbase.cli.questionary.confirm") as confirm:
            confirm.return_value.ask.return_value = False
            assert cli.main(["delete", "users", "3"]) == 0

        assert not any(text.startswith("DELETE") for text in cli_conn.sql)

    def test_unknown_table(self, cli_conn, capsys):
        assert cli.main(["columns", "ghosts"]) == 1
        assert "ghosts" in capsys.readouterr().out


class TestNonIdPrimaryKey:
    """Tables keyed on something other than `id` need --pk on every command."""

    @pytest.fixture
    def accounts_conn(self):
        conn = FakeConnection(tables={"accounts": ("code", "owner")})
        with patch("recordbase.cli.db.connect") as mock_connect:
            mock_connect.return_value.__enter__.return_value = conn
            mock_connect.return_value.__exit__.return_value = False
            yield conn

    def test_columns_without_pk_fails(self, accounts_conn, capsys):
        assert cli.main(["columns", "accounts"]) == 1
        assert "accounts" in capsys.readouterr().out

    def test_columns(self, accounts_conn, capsys):
        assert cli.main(["columns", "accounts", "--pk", "code"]) == 0

        out = capsys.readouterr().out
        assert "code" in out
        assert "owner" in out

    def test_list_with_where(self, accounts_conn, capsys):
        accounts_conn.respond([{"code": "ab-1", "owner": "Ann"}])

        assert cli.main(["list", "accounts", "--pk", "code", "--where", "owner=Ann"]) == 0

        assert accounts_conn.statements == [
            ('SELECT * FROM "accounts" WHERE "owner" = %s', ["Ann"]),
        ]
        assert "ab-1" in capsys.readouterr().out

    def test_show_text_key(self, accounts_conn, capsys):
        accounts_conn.respond([{"code": "ab-1", "owner": "Ann"}])

        assert cli.main(["show", "accounts", "ab-1", "--pk", "code"]) == 0

        assert accounts_conn.statements == [
            ('SELECT * FROM "accounts" WHERE "code" = %s', ["ab-1"]),
        ]


def test_missing_database_url(capsys):
    with patch.object(cli.db.config, "database_url", None):
        assert cli.main(["columns", "users"]) == 1

    assert "DATABASE_URL" in capsys.readouterr().out
