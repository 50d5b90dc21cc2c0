"""Test CLI commands."""

import os
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from kohbackup.backup.storage import DB_DUMP, WEB_ARCHIVE
from kohbackup.cli import cli

from conftest import make_backup_set, make_project


class TestCLICommands:
    """Test CLI command functionality."""

    def setup_method(self):
        """Setup test environment."""
        self.runner = CliRunner()

    @pytest.fixture
    def config_path(self, settings):
        """Config file pointing at the test project and backup roots."""
        path = os.path.join(os.path.dirname(settings.project_root), "koh-backup.yml")
        with open(path, "w") as f:
            yaml.dump(
                {
                    "project_root": settings.project_root,
                    "backup_root": settings.backup_root,
                    "compressor": "gzip",
                    "cache_cleanup": {"delay": 0},
                },
                f,
            )
        return path

    def test_cli_version(self):
        """Test CLI version display."""
        result = self.runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "version" in result.output.lower()

    def test_cli_help(self):
        """Test CLI help display."""
        result = self.runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "KOH Backup" in result.output
        assert "Commands:" in result.output

    def test_cli_verbose_flag(self):
        """Test verbose flag functionality."""
        result = self.runner.invoke(cli, ["--verbose", "--help"])

        assert result.exit_code == 0

    def test_menu_exit(self, config_path):
        result = self.runner.invoke(cli, ["--config", config_path], input="3\n")

        assert result.exit_code == 0
        assert "Create backup" in result.output
        assert "Exiting." in result.output

    def test_menu_gives_up_after_invalid_input(self, config_path):
        result = self.runner.invoke(cli, ["--config", config_path], input="9\nx\n\n0\nfoo\n")

        assert result.exit_code == 1
        assert "Invalid selection" in result.output

    def test_menu_backup(self, config_path):
        with patch("kohbackup.backup.BackupManager") as mock_manager:
            mock_manager.return_value.run.return_value = 0

            result = self.runner.invoke(cli, ["--config", config_path], input="1\n")

        assert result.exit_code == 0
        assert "BACKUP COMPLETED SUCCESSFULLY" in result.output
        mock_manager.return_value.run.assert_called_once_with(project=None, mode=None)

    def test_backup_command_passes_options(self, config_path):
        with patch("kohbackup.backup.BackupManager") as mock_manager:
            mock_manager.return_value.run.return_value = 0

            result = self.runner.invoke(cli, ["--config", config_path, "backup", "-p", "demo", "-m", "web_only"])

        assert result.exit_code == 0
        mock_manager.return_value.run.assert_called_once_with(project="demo", mode="web_only")

    @pytest.mark.parametrize("code", [1, 2, 3, 4])
    def test_backup_exit_codes(self, config_path, code):
        """The process exit code is the one the backup run reports."""
        with patch("kohbackup.backup.BackupManager") as mock_manager:
            mock_manager.return_value.run.return_value = code

            result = self.runner.invoke(cli, ["--config", config_path, "backup", "-p", "demo", "-m", "all"])

        assert result.exit_code == code
        assert "BACKUP COMPLETED SUCCESSFULLY" not in result.output

    def test_backup_rejects_unknown_mode(self, config_path):
        result = self.runner.invoke(cli, ["--config", config_path, "backup", "-m", "everything"])

        assert result.exit_code == 2
        assert "Invalid value" in result.output

    def test_backup_dump_failure_end_to_end(self, settings, config_path):
        """A failing mysqldump surfaces as exit code 2."""
        make_project(settings.project_root, "demo")
        failing = MagicMock()
        failing.dump.side_effect = OSError("mysqldump: not found")
        failing.mysqldump_binary = "mysqldump"

        with patch("kohbackup.backup.manager.MySQLClient", return_value=failing):
            result = self.runner.invoke(cli, ["--config", config_path, "backup", "-p", "demo", "-m", "all"])

        assert result.exit_code == 2
        assert "✗" in result.output
        assert os.listdir(os.path.join(settings.backup_root, "bak.demo")) == []

    @pytest.mark.parametrize("code", [0, 1, 5, 6, 7])
    def test_restore_exit_codes(self, config_path, code):
        with patch("kohbackup.backup.RecoveryManager") as mock_manager:
            mock_manager.return_value.run.return_value = code

            result = self.runner.invoke(cli, ["--config", config_path, "restore", "-p", "demo", "-b", "20250101_000000"])

        assert result.exit_code == code
        mock_manager.return_value.run.assert_called_once_with(project="demo", timestamp="20250101_000000")

    def test_restore_cancelled(self, settings, config_path):
        """Declining the confirmation leaves everything in place and exits 0."""
        project_dir = make_project(settings.project_root, "demo")
        make_backup_set(settings, "demo", "20250101_000000", artifacts=(DB_DUMP, WEB_ARCHIVE))

        result = self.runner.invoke(
            cli, ["--config", config_path, "restore", "-p", "demo", "-b", "20250101_000000"], input="nein\n"
        )

        assert result.exit_code == 0
        assert "WARNING!" in result.output
        assert "Restore cancelled by user." in result.output
        assert os.path.isfile(os.path.join(project_dir, "index.php"))

    def test_restore_without_backups(self, settings, config_path):
        make_project(settings.project_root, "demo")

        result = self.runner.invoke(cli, ["--config", config_path, "restore", "-p", "demo"])

        assert result.exit_code == 1
        assert "No backup directory" in result.output

    def test_list(self, settings, config_path):
        make_project(settings.project_root, "demo")
        make_project(settings.project_root, "empty")
        make_backup_set(settings, "demo", "20250101_000000")
        make_backup_set(settings, "demo", "20250102_000000", artifacts=(DB_DUMP, WEB_ARCHIVE))

        result = self.runner.invoke(cli, ["--config", config_path, "list"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "demo:"
        assert lines[1].strip().startswith("20250102_000000 (db+web)")
        assert lines[2].strip().startswith("20250101_000000 (db)")
        assert "empty:" in lines
        assert "  (no backups)" in lines

    def test_bad_config_exits_1(self, temp_directory):
        result = self.runner.invoke(cli, ["--config", os.path.join(temp_directory, "missing.yml"), "list"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_config_from_environment(self, config_path, monkeypatch, settings):
        make_project(settings.project_root, "demo")
        monkeypatch.setenv("KOH_BACKUP_CONFIG", config_path)

        result = self.runner.invoke(cli, ["list"])

        assert result.exit_code == 0
        assert "demo:" in result.output

    def test_config_init_and_show(self, temp_directory):
        path = os.path.join(temp_directory, "new", "koh-backup.yml")

        result = self.runner.invoke(
            cli, ["--config", path, "config", "init", "--project-root", "/srv/www", "--max-backups", "4"]
        )

        assert result.exit_code == 0
        assert f"Configuration written to {path}" in result.output

        result = self.runner.invoke(cli, ["--config", path, "config", "show"])

        assert result.exit_code == 0
        shown = yaml.safe_load(result.output)
        assert shown["project_root"] == "/srv/www"
        assert shown["max_backups"] == 4

    def test_config_init_refuses_overwrite(self, config_path):
        result = self.runner.invoke(cli, ["--config", config_path, "config", "init"])

        assert result.exit_code == 1
        assert "already exists" in result.output
