"""Tests for configuration management."""

import os
from unittest.mock import mock_open, patch

import pytest
import yaml

from kohbackup.config.manager import ConfigManager, Settings, merge_config
from kohbackup.config.schemas import DEFAULT_CONFIG
from kohbackup.config.validator import ConfigValidator
from kohbackup.utils.errors import ConfigurationError


class TestConfigManager:
    """Test configuration manager functionality."""

    def test_path_precedence(self, temp_directory, monkeypatch):
        """Explicit path beats the environment, which beats the default."""
        monkeypatch.setenv("KOH_BACKUP_CONFIG", os.path.join(temp_directory, "env.yml"))

        assert ConfigManager(os.path.join(temp_directory, "cli.yml")).path.endswith("cli.yml")
        assert ConfigManager().path.endswith("env.yml")

        monkeypatch.delenv("KOH_BACKUP_CONFIG")
        manager = ConfigManager()
        assert manager.path == os.path.join(temp_directory, ".config", "koh-backup", "koh-backup.yml")
        assert not manager.explicit

    def test_defaults_without_file(self):
        """A missing default config file yields the defaults."""
        config = ConfigManager().load_config()

        assert config == DEFAULT_CONFIG

    def test_missing_explicit_file(self, temp_directory):
        manager = ConfigManager(os.path.join(temp_directory, "missing.yml"))

        with pytest.raises(ConfigurationError) as exc_info:
            manager.load_config()

        assert "not found" in exc_info.value.message

    def test_load_config_valid_yaml(self, temp_directory):
        """Test loading valid YAML configuration merged over defaults."""
        path = os.path.join(temp_directory, "koh-backup.yml")
        with open(path, "w") as f:
            yaml.dump({"project_root": "/srv/www", "max_backups": 5, "cache_cleanup": {"delay": 0}}, f)

        config = ConfigManager(path).load_config()

        assert config["project_root"] == "/srv/www"
        assert config["max_backups"] == 5
        assert config["cache_cleanup"] == {"attempts": 3, "delay": 0}
        assert config["compressor"] == "pigz"

    def test_load_config_invalid_yaml(self):
        """Test loading invalid YAML configuration."""
        invalid_yaml = "invalid: yaml: content: ["

        with patch("os.path.exists", return_value=True):
            with patch("builtins.open", mock_open(read_data=invalid_yaml)):
                with pytest.raises(ConfigurationError) as exc_info:
                    ConfigManager("test-config.yml").load_config()

        assert "Error parsing YAML" in exc_info.value.message

    def test_load_config_schema_violation(self, temp_directory):
        path = os.path.join(temp_directory, "koh-backup.yml")
        with open(path, "w") as f:
            yaml.dump({"max_backups": -1, "compressor": "bzip2"}, f)

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(path).load_config()

        assert "max_backups" in exc_info.value.details
        assert "compressor" in exc_info.value.details

    def test_load_settings_expands_home(self, temp_directory):
        settings = ConfigManager().load_settings()

        assert settings.project_root == os.path.join(temp_directory, "public_html")
        assert settings.backup_root == os.path.join(temp_directory, "backup")
        assert settings.cache_keep == ["min", ".htaccess"]
        assert settings.mysqldump_binary == "mysqldump"

    def test_initialize_config(self, temp_directory):
        """The rendered default file is valid YAML carrying the overrides."""
        path = os.path.join(temp_directory, "conf", "koh-backup.yml")
        manager = ConfigManager(path)

        written = manager.initialize_config({"project_root": "/srv/www", "max_backups": 0})

        assert written == path
        with open(path) as f:
            content = f.read()
        assert content.startswith("# KOH Backup configuration")
        loaded = yaml.safe_load(content)
        assert loaded["project_root"] == "/srv/www"
        assert loaded["max_backups"] == 0
        assert loaded["media_dirs"] == ["media", "mediafiles"]
        assert ConfigManager(path).load_config()["max_backups"] == 0

    def test_initialize_config_refuses_overwrite(self, temp_directory):
        path = os.path.join(temp_directory, "koh-backup.yml")
        manager = ConfigManager(path)
        manager.initialize_config()

        with pytest.raises(ConfigurationError):
            manager.initialize_config()

        manager.initialize_config({"max_backups": 7}, force=True)
        assert ConfigManager(path).load_config()["max_backups"] == 7

    def test_dump_config(self):
        dumped = yaml.safe_load(ConfigManager().dump_config())

        assert dumped == DEFAULT_CONFIG


class TestSettings:
    """Test settings helpers."""

    def test_project_paths(self):
        settings = Settings(project_root="/srv/www", backup_root="/srv/backup")

        assert settings.project_dir("shop") == "/srv/www/shop"
        assert settings.project_config_path("shop") == "/srv/www/shop/includes/config.JTL-Shop.ini.php"
        assert settings.cache_path("shop") == "/srv/www/shop/templates_c"
        assert settings.config_member("shop") == "shop/includes/config.JTL-Shop.ini.php"

    def test_merge_config_is_deep_and_pure(self):
        base = {"a": 1, "nested": {"x": 1, "y": 2}}

        merged = merge_config(base, {"nested": {"y": 3}})

        assert merged == {"a": 1, "nested": {"x": 1, "y": 3}}
        assert base["nested"]["y"] == 2


class TestConfigValidator:
    """Test configuration validation."""

    def setup_method(self):
        """Setup test environment."""
        self.validator = ConfigValidator()

    def test_defaults_valid(self):
        assert self.validator.validate_config(DEFAULT_CONFIG) == []

    def test_unknown_key(self):
        errors = self.validator.validate_config({"max_backup": 3})

        assert len(errors) == 1
        assert "max_backup" in errors[0]

    def test_compression_level_range(self):
        assert self.validator.validate_config({"compression_level": 10})
        assert self.validator.validate_config({"compression_level": 0})
        assert self.validator.validate_config({"compression_level": 1}) == []

    def test_relative_paths(self):
        errors = self.validator.validate_config({"config_file": "/etc/passwd", "media_dirs": ["media", "../other"]})

        assert "config_file: must be a path relative to the project directory" in errors
        assert "media_dirs.1: must be a path relative to the project directory" in errors

    def test_not_a_mapping(self):
        assert self.validator.validate_config(["a"]) == ["Configuration must be a mapping"]
