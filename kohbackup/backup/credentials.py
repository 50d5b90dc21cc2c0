"""Database credential extraction from JTL-Shop style PHP config files."""

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Dict, Optional

from kohbackup.utils.errors import (
    ConfigNotFoundError,
    MissingCredentialError,
    create_error_suggestions,
)

logger = logging.getLogger(__name__)

# define('DB_HOST', 'localhost');  -- either quote style on key and value
DEFINE_PATTERN = re.compile(
    r"""define\(\s*["'](DB_HOST|DB_NAME|DB_USER|DB_PASS)["']\s*,\s*["']([^"']*)["']"""
)

FIELD_KEYS = {
    "DB_HOST": "host",
    "DB_NAME": "name",
    "DB_USER": "user",
    "DB_PASS": "password",
}


@dataclass
class Credentials:
    """Database access data of one project. Never persisted."""

    host: str
    name: str
    user: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(host={self.host!r}, name={self.name!r}, user={self.user!r}, password='***')"


def parse_config(text: str) -> Dict[str, str]:
    """
    Collect DB_* definitions from PHP source.

    Args:
        text: PHP config file content

    Returns:
        Dict[str, str]: Found values keyed by credential field; the first
        definition of each constant wins
    """
    values = {}
    for match in DEFINE_PATTERN.finditer(text):
        field_name = FIELD_KEYS[match.group(1)]
        values.setdefault(field_name, match.group(2))
    return values


def credentials_from_text(text: str, source: str = "config") -> Credentials:
    """
    Build credentials from PHP source, requiring all four fields.

    Raises:
        MissingCredentialError: If any field is absent or empty
    """
    values = parse_config(text)
    missing = [key for key, field_name in FIELD_KEYS.items() if not values.get(field_name)]
    if missing:
        raise MissingCredentialError(
            f"Missing database credentials in {source}: {', '.join(missing)}",
            suggestions=create_error_suggestions("missing_credential"),
        )
    return Credentials(**values)


def extract_credentials(config_path: str) -> Credentials:
    """
    Read credentials from a live config file.

    Args:
        config_path: Path to the PHP config file

    Raises:
        ConfigNotFoundError: If the file does not exist
        MissingCredentialError: If a field is absent or empty
    """
    if not os.path.isfile(config_path):
        raise ConfigNotFoundError(
            f"Config file not found: {config_path}",
            suggestions=create_error_suggestions("config_not_found", path=config_path),
        )

    with open(config_path, encoding="utf-8", errors="replace") as f:
        text = f.read()

    credentials = credentials_from_text(text, source=config_path)
    logger.debug("Read credentials for database '%s' from %s", credentials.name, config_path)
    return credentials


def extract_credentials_from_archive(
    archive_path: str,
    member: str,
    tar_binary: str = "tar",
    scratch_root: Optional[str] = None,
) -> Credentials:
    """
    Read credentials from the config file stored inside a web archive.

    Only ``member`` is extracted, into a scratch directory that is removed
    again on every exit path.

    Args:
        archive_path: gzip-compressed tar produced by a web backup
        member: Archive member name, e.g. ``shop/includes/config.JTL-Shop.ini.php``
        tar_binary: tar executable
        scratch_root: Parent directory for the scratch directory

    Raises:
        ConfigNotFoundError: If the archive or the member is missing
        MissingCredentialError: If a field is absent or empty
    """
    if not os.path.isfile(archive_path):
        raise ConfigNotFoundError(f"Web archive not found: {archive_path}")

    with tempfile.TemporaryDirectory(prefix="koh-config-", dir=scratch_root) as scratch:
        result = subprocess.run(
            [tar_binary, "-xzf", archive_path, "-C", scratch, member],
            capture_output=True,
            text=True,
        )
        config_path = os.path.join(scratch, member)

        if result.returncode != 0 or not os.path.isfile(config_path):
            raise ConfigNotFoundError(
                f"Config file {member} not found in backup {archive_path}",
                details=result.stderr.strip() or None,
            )

        with open(config_path, encoding="utf-8", errors="replace") as f:
            text = f.read()

    return credentials_from_text(text, source=f"{archive_path}:{member}")
