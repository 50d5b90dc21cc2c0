"""Configuration validation for KOH Backup."""

from typing import Any, Dict, List

import jsonschema

from .schemas import CONFIG_SCHEMA


class ConfigValidator:
    """Validates KOH Backup configuration files."""

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate a configuration mapping.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        if not isinstance(config, dict):
            return ["Configuration must be a mapping"]

        errors = []

        validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
            location = ".".join(str(part) for part in error.path)
            if location:
                errors.append(f"{location}: {error.message}")
            else:
                errors.append(f"Schema validation failed: {error.message}")

        errors.extend(self._validate_relative_paths(config))

        return errors

    def _validate_relative_paths(self, config: Dict[str, Any]) -> List[str]:
        """Project-relative settings must stay inside the project."""
        errors = []

        paths = [(key, config.get(key)) for key in ("config_file", "cache_dir")]
        media_dirs = config.get("media_dirs")
        if isinstance(media_dirs, list):
            paths.extend((f"media_dirs.{index}", value) for index, value in enumerate(media_dirs))

        for key, value in paths:
            if not isinstance(value, str):
                continue
            if value.startswith("/") or ".." in value.split("/"):
                errors.append(f"{key}: must be a path relative to the project directory")

        return errors
