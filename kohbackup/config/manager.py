"""Configuration management for KOH Backup."""

import copy
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from jinja2 import Environment, FileSystemLoader

from kohbackup.utils.errors import ConfigurationError, format_validation_errors

from .schemas import DEFAULT_CONFIG
from .validator import ConfigValidator

CONFIG_ENV_VAR = "KOH_BACKUP_CONFIG"
DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "koh-backup", "koh-backup.yml")


@dataclass
class Settings:
    """Effective, validated settings for one run."""

    project_root: str
    backup_root: str
    max_backups: int = 2
    compression_level: int = 9
    compressor: str = "pigz"
    config_file: str = "includes/config.JTL-Shop.ini.php"
    cache_dir: str = "templates_c"
    cache_keep: List[str] = field(default_factory=lambda: ["min", ".htaccess"])
    cache_cleanup_attempts: int = 3
    cache_cleanup_delay: float = 2.0
    media_dirs: List[str] = field(default_factory=lambda: ["media", "mediafiles"])
    mysqldump_binary: str = "mysqldump"
    mysql_binary: str = "mysql"
    max_prompt_attempts: int = 5

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "Settings":
        """Build settings from a merged configuration mapping."""
        cleanup = config.get("cache_cleanup", {})
        mysql = config.get("mysql", {})
        return cls(
            project_root=os.path.expanduser(config["project_root"]),
            backup_root=os.path.expanduser(config["backup_root"]),
            max_backups=config["max_backups"],
            compression_level=config["compression_level"],
            compressor=config["compressor"],
            config_file=config["config_file"],
            cache_dir=config["cache_dir"],
            cache_keep=list(config["cache_keep"]),
            cache_cleanup_attempts=cleanup.get("attempts", 3),
            cache_cleanup_delay=float(cleanup.get("delay", 2)),
            media_dirs=list(config["media_dirs"]),
            mysqldump_binary=mysql.get("dump_binary", "mysqldump"),
            mysql_binary=mysql.get("client_binary", "mysql"),
            max_prompt_attempts=config["max_prompt_attempts"],
        )

    def project_dir(self, project: str) -> str:
        """Live directory of ``project``."""
        return os.path.join(self.project_root, project)

    def project_config_path(self, project: str) -> str:
        """Live PHP config file of ``project``."""
        return os.path.join(self.project_root, project, self.config_file)

    def cache_path(self, project: str) -> str:
        """Template cache directory of ``project``."""
        return os.path.join(self.project_root, project, self.cache_dir)

    def config_member(self, project: str) -> str:
        """Archive member name of the PHP config inside a web archive."""
        return f"{project}/{self.config_file}"


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages the KOH Backup configuration file."""

    def __init__(self, path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            path: Explicit config file; falls back to $KOH_BACKUP_CONFIG and
                then to ~/.config/koh-backup/koh-backup.yml
        """
        self.explicit = bool(path or os.environ.get(CONFIG_ENV_VAR))
        self.path = os.path.expanduser(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
        self.validator = ConfigValidator()
        self._config_cache = None

        templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
        self.jinja_env = Environment(loader=FileSystemLoader(templates_dir), trim_blocks=True, lstrip_blocks=True)

    def load_config(self) -> Dict[str, Any]:
        """
        Load the configuration merged over the defaults.

        Returns:
            Dict[str, Any]: Effective configuration

        Raises:
            ConfigurationError: If the file is missing (when given explicitly),
                unreadable, or invalid
        """
        if self._config_cache is not None:
            return self._config_cache

        file_config = {}
        if os.path.exists(self.path):
            try:
                with open(self.path, encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Error parsing YAML file {self.path}", details=str(e)) from e
            except OSError as e:
                raise ConfigurationError(f"Cannot read configuration file {self.path}", details=str(e)) from e
        elif self.explicit:
            raise ConfigurationError(
                f"Configuration file not found: {self.path}",
                suggestions=["Create one with 'koh-backup config init'"],
            )

        errors = self.validator.validate_config(file_config)
        if errors:
            raise ConfigurationError(
                f"Invalid configuration in {self.path}",
                details=format_validation_errors(errors),
            )

        self._config_cache = merge_config(DEFAULT_CONFIG, file_config)
        return self._config_cache

    def load_settings(self) -> Settings:
        """Load configuration and return it as ``Settings``."""
        return Settings.from_dict(self.load_config())

    def render_default_config(self, template_vars: Optional[Dict[str, Any]] = None) -> str:
        """
        Render the commented default configuration file.

        Args:
            template_vars: Values overriding the defaults in the template

        Returns:
            str: YAML document
        """
        values = merge_config(DEFAULT_CONFIG, template_vars or {})
        template = self.jinja_env.get_template("koh-backup.yml.j2")
        return template.render(**values)

    def initialize_config(self, template_vars: Optional[Dict[str, Any]] = None, force: bool = False) -> str:
        """
        Write the default configuration file.

        Args:
            template_vars: Values overriding the defaults
            force: Overwrite an existing file

        Returns:
            str: Path to the written file
        """
        if os.path.exists(self.path) and not force:
            raise ConfigurationError(
                f"Configuration file already exists: {self.path}",
                suggestions=["Use --force to overwrite it"],
            )

        content = self.render_default_config(template_vars)
        errors = self.validator.validate_config(yaml.safe_load(content) or {})
        if errors:
            raise ConfigurationError("Rendered configuration is invalid", details=format_validation_errors(errors))

        config_dir = os.path.dirname(self.path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(self.path, "w", encoding="utf-8") as f:
            f.write(content)

        self._config_cache = None
        return self.path

    def dump_config(self) -> str:
        """Return the effective configuration as YAML."""
        return yaml.safe_dump(self.load_config(), default_flow_style=False, sort_keys=False)
