"""
Tests for the startup migration runner.

Alembic and the sync engine are mocked; no database is touched.
"""

from unittest.mock import MagicMock, patch

import pytest

from app.db import migration_runner
from app.db.migration_runner import (
    MigrationStatus,
    check_migrations_status,
    run_migrations,
)


class TestMigrationStatus:
    def test_pending_when_revisions_differ(self):
        assert MigrationStatus(current_revision=None, head_revision="0001").pending is True

    def test_not_pending_at_head(self):
        assert MigrationStatus(current_revision="0001", head_revision="0001").pending is False


class TestSyncDatabaseUrl:
    def test_asyncpg_converted_to_psycopg2(self):
        with patch.object(migration_runner, "settings") as mock_settings:
            mock_settings.database_url = "postgresql+asyncpg://u:p@db:5432/quota"
            assert (
                migration_runner._get_sync_database_url()
                == "postgresql+psycopg2://u:p@db:5432/quota"
            )


class TestRunMigrations:
    """Tests for run_migrations."""

    def test_up_to_date_skips_upgrade(self):
        with (
            patch.object(migration_runner, "create_engine") as mock_create,
            patch.object(migration_runner, "_get_current_revision", return_value="0001"),
            patch.object(migration_runner, "_get_head_revision", return_value="0001"),
            patch.object(migration_runner, "command") as mock_command,
        ):
            run_migrations()

        mock_command.upgrade.assert_not_called()
        mock_create.return_value.dispose.assert_called_once()

    def test_pending_runs_upgrade(self):
        with (
            patch.object(migration_runner, "create_engine"),
            patch.object(migration_runner, "_get_current_revision", side_effect=[None, "0001"]),
            patch.object(migration_runner, "_get_head_revision", return_value="0001"),
            patch.object(migration_runner, "command") as mock_command,
        ):
            run_migrations()

        mock_command.upgrade.assert_called_once()
        assert mock_command.upgrade.call_args.args[1] == "head"

    def test_failure_raises_runtime_error(self):
        with (
            patch.object(migration_runner, "create_engine"),
            patch.object(
                migration_runner, "_get_current_revision", side_effect=Exception("refused")
            ),
            patch.object(migration_runner, "_get_head_revision", return_value="0001"),
        ):
            with pytest.raises(RuntimeError, match="Database migration failed: refused"):
                run_migrations()

    def test_missing_config_is_skipped(self, tmp_path):
        with (
            patch.object(migration_runner, "ALEMBIC_INI_PATH", tmp_path / "missing.ini"),
            patch.object(migration_runner, "create_engine") as mock_create,
        ):
            run_migrations()

        mock_create.assert_not_called()


class TestCheckMigrationsStatus:
    def test_reports_revisions(self):
        engine = MagicMock()
        with (
            patch.object(migration_runner, "create_engine", return_value=engine),
            patch.object(migration_runner, "_get_current_revision", return_value=None),
            patch.object(migration_runner, "_get_head_revision", return_value="0001"),
        ):
            status = check_migrations_status()

        assert status == MigrationStatus(current_revision=None, head_revision="0001")
        assert status.pending is True
        engine.dispose.assert_called_once()
