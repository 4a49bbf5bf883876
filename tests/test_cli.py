"""Tests for credstore.cli — command line interface."""

from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from credstore.cli import _split_creds_args, main, run_creds
from credstore.config import Config
from credstore.errors import StoreUnavailableError


@pytest.fixture(autouse=True)
def cli_env(clean_env):
    from credstore.config import reset_config

    reset_config()
    yield
    reset_config()


def _patch_repo(repo, calls=None):
    @contextmanager
    def fake(*, snapshot=False):
        if calls is not None:
            calls.append(snapshot)
        yield repo

    return patch("credstore.dal.open_repository", fake)


class TestCli:
    def test_version(self, capsys):
        rc = main(["version"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "credstore" in out
        assert "0.1.0" in out

    def test_version_flag(self, capsys):
        assert main(["--version"]) == 0
        assert "credstore" in capsys.readouterr().out

    def test_no_args(self, capsys):
        assert main([]) == 0

    def test_creds_via_umbrella(self, capsys, scenario_repo):
        with _patch_repo(scenario_repo):
            rc = main(["creds", "-u", "admin"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "admin" in out
        assert "guest" not in out

    def test_workspace_override(self, scenario_repo):
        with _patch_repo(scenario_repo):
            main(["--workspace", "acme", "creds"])
        assert scenario_repo.queries[-1].workspace == "acme"

    def test_status_unreachable(self, capsys):
        with patch("psycopg2.connect", side_effect=Exception("refused")):
            rc = main(["status"])
        assert rc == 1
        out = capsys.readouterr().out
        assert "PostgreSQL" in out
        assert "UNREACHABLE" in out

    def test_status_connected(self, capsys):
        conn = MagicMock()
        cur = conn.cursor.return_value.__enter__.return_value
        cur.fetchone.side_effect = [("PostgreSQL 16.4, compiled by gcc",), (12,)]
        with patch("psycopg2.connect", return_value=conn):
            rc = main(["-w", "acme", "status"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "PostgreSQL 16.4" in out
        assert "12 credential(s)" in out
        assert "acme" in out

    def test_migrate_status(self, capsys, tmp_path):
        from credstore.db.migrate import Migration, MigrationStatus

        rows = [MigrationStatus(Migration("001", tmp_path / "001_init.sql"), "pending")]
        with patch("credstore.db.migrate.status", return_value=rows):
            rc = main(["migrate"])
        assert rc == 0
        assert "001_init.sql" in capsys.readouterr().out

    def test_migrate_apply_dry_run(self):
        with patch("credstore.db.migrate.apply") as mock_apply:
            rc = main(["migrate", "apply", "001", "--dry-run"])
        assert rc == 0
        mock_apply.assert_called_once_with(version="001", dry_run=True)

    def test_migrate_store_unavailable(self, capsys):
        with patch("credstore.db.migrate.status", side_effect=StoreUnavailableError("down")):
            rc = main(["migrate", "status"])
        assert rc == 1
        assert "Error: down" in capsys.readouterr().out


class TestSplitCredsArgs:
    def test_splits_at_creds(self):
        assert _split_creds_args(["-v", "creds", "-u", "admin"]) == (["-v", "creds"], ["-u", "admin"])

    def test_workspace_value_named_creds(self):
        assert _split_creds_args(["-w", "creds", "creds", "-d"]) == (
            ["-w", "creds", "creds"],
            ["-d"],
        )

    def test_no_creds(self):
        assert _split_creds_args(["status"]) == (["status"], [])


class TestRunCreds:
    def test_help(self, capsys):
        assert run_creds(["-h"], Config()) == 0
        out = capsys.readouterr().out
        assert "creds add" in out
        assert "-t,--type" in out

    def test_help_subcommand(self, capsys):
        assert run_creds(["help"], Config()) == 0
        assert "Usage - Listing credentials" in capsys.readouterr().out

    def test_listing_uses_snapshot(self, scenario_repo):
        calls = []
        with _patch_repo(scenario_repo, calls):
            assert run_creds([], Config()) == 0
        assert calls == [True]

    def test_delete(self, capsys, scenario_repo):
        with _patch_repo(scenario_repo):
            assert run_creds(["-d", "-s", "ssh"], Config()) == 0
        assert "[*] Deleted 1 creds" in capsys.readouterr().out
        assert scenario_repo.destroyed == [2]

    def test_bad_argument_exits_non_zero(self, capsys, scenario_repo):
        with _patch_repo(scenario_repo):
            assert run_creds(["-t", "kerberos"], Config()) == 1
        assert capsys.readouterr().out.startswith("[-] Unrecognized credential type kerberos")
        assert scenario_repo.queries == []

    def test_rhosts_persisted(self, capsys, scenario_repo, tmp_path):
        target = tmp_path / "rhosts"
        with _patch_repo(scenario_repo):
            assert run_creds(["-R"], Config(rhosts_file=target)) == 0
        assert target.read_text() == "10.0.0.5\n"
        assert "RHOSTS => 10.0.0.5" in capsys.readouterr().out

    def test_add(self, capsys, repo):
        with _patch_repo(repo):
            rc = run_creds(["add", "user:admin", "password:notpassword", "realm:workgroup"], Config())
        assert rc == 0
        assert "[+] Added Password credential 1 to default" in capsys.readouterr().out
        (core,) = repo.cores.values()
        assert core.realm.value == "workgroup"

    def test_add_two_privates_creates_nothing(self, capsys, repo):
        with _patch_repo(repo):
            rc = run_creds(["add", "user:admin", "password:a", "ntlm:b"], Config())
        assert rc == 1
        assert "single Private type" in capsys.readouterr().out
        assert repo.cores == {}

    def test_add_duplicate(self, capsys, repo):
        args = ["add", "user:admin", "password:x"]
        with _patch_repo(repo):
            run_creds(args, Config())
            rc = run_creds(args, Config())
        assert rc == 1
        assert "already exists" in capsys.readouterr().out

    def test_commit_failure_reported(self, capsys):
        pool = MagicMock()
        conn = pool.getconn.return_value
        # public id, private id, no existing core, new core id
        conn.cursor.return_value.fetchone.side_effect = [(1,), (2,), None, (42,)]
        conn.commit.side_effect = psycopg2.OperationalError("server closed the connection")
        with patch("credstore.db.connection.get_pool", return_value=pool), patch(
            "credstore.dal.log_credential_mutation"
        ):
            rc = run_creds(["add", "user:a", "password:b"], Config())
        assert rc == 1
        assert capsys.readouterr().out.startswith("[-] Credential store error")
        conn.rollback.assert_called_once()

    def test_separator_only_range_deletes_nothing(self, capsys, scenario_repo):
        with _patch_repo(scenario_repo):
            assert run_creds(["-d", ","], Config()) == 1
        assert "Invalid host parameter" in capsys.readouterr().out
        assert scenario_repo.queries == []
        assert scenario_repo.destroyed == []

    def test_pool_closed_after_command(self, scenario_repo):
        with _patch_repo(scenario_repo), patch("credstore.db.close_pool") as mock_close:
            run_creds(["-t", "bogus"], Config())
            run_creds([], Config())
        assert mock_close.call_count == 2

    def test_store_unavailable(self, capsys):
        @contextmanager
        def down(*, snapshot=False):
            raise StoreUnavailableError("Database not connected")
            yield

        with patch("credstore.dal.open_repository", down):
            assert run_creds([], Config()) == 1
        assert "[-] Database not connected" in capsys.readouterr().out
