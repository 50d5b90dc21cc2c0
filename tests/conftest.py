"""Pytest configuration and shared fixtures."""

import logging
import os
import re
import shutil
import tempfile

import pytest

from kohbackup.backup.database import MySQLClient
from kohbackup.backup.storage import DB_DUMP, METADATA
from kohbackup.config.manager import Settings
from kohbackup.utils.errors import DatabaseError

CONFIG_TEMPLATE = """<?php
define('DB_HOST', '{host}');
define("DB_NAME", "{name}");
define('DB_USER', "{user}");
define('DB_PASS', '{password}');
"""

requires_archivers = pytest.mark.skipif(
    shutil.which("tar") is None or shutil.which("gzip") is None,
    reason="tar and gzip are required",
)


class FakeMySQLClient(MySQLClient):
    """In-memory stand-in for the mysql/mysqldump binaries."""

    def __init__(self, tables=None, fail_on=()):
        super().__init__()
        self.tables = list(tables or [])
        self.fail_on = set(fail_on)
        self.calls = []

    def _maybe_fail(self, action):
        if action in self.fail_on:
            raise DatabaseError(f"{action} failed", details="ERROR 2003 (HY000): Can't connect")

    def dump(self, credentials, dest_path):
        self.calls.append(("dump", credentials.name))
        self._maybe_fail("dump")
        with open(dest_path, "w", encoding="utf-8") as f:
            f.write("-- fake dump\n")
            for table in self.tables:
                f.write(f"CREATE TABLE `{table}` (id INT);\n")

    def list_tables(self, credentials):
        self.calls.append(("list_tables", credentials.name))
        self._maybe_fail("list_tables")
        return list(self.tables)

    def execute(self, credentials, statement):
        self.calls.append(("execute", statement))
        self._maybe_fail("execute")

    def drop_all_tables(self, credentials):
        self.calls.append(("drop_all_tables", credentials.name))
        self._maybe_fail("drop_all_tables")
        dropped = list(self.tables)
        self.tables.clear()
        return dropped

    def restore(self, credentials, dump_path):
        self.calls.append(("restore", dump_path))
        self._maybe_fail("restore")
        with open(dump_path, encoding="utf-8") as f:
            self.tables = re.findall(r"CREATE TABLE `([^`]+)`", f.read())

    @property
    def actions(self):
        return [call[0] for call in self.calls]


def write_file(path, content=""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def make_project(project_root, name="demo", credentials=None):
    """Create a shop project tree with config, cache, media and code."""
    credentials = credentials or {"host": "localhost", "name": "shop", "user": "shopuser", "password": "s3cret"}
    base = os.path.join(project_root, name)
    write_file(os.path.join(base, "includes", "config.JTL-Shop.ini.php"), CONFIG_TEMPLATE.format(**credentials))
    write_file(os.path.join(base, "index.php"), "<?php echo 'shop';")
    write_file(os.path.join(base, "admin", "index.php"), "<?php echo 'admin';")
    write_file(os.path.join(base, "templates_c", ".htaccess"), "deny from all")
    write_file(os.path.join(base, "templates_c", "min", "cache.css"), "body{}")
    write_file(os.path.join(base, "templates_c", "compiled_index.php"), "compiled")
    write_file(os.path.join(base, "templates_c", "NOVA", "header.php"), "compiled")
    write_file(os.path.join(base, "media", "image", "product.jpg"), "jpeg-bytes")
    write_file(os.path.join(base, "mediafiles", "manual.pdf"), "pdf-bytes")
    return base


def make_backup_set(settings, project, timestamp, complete=True, artifacts=(DB_DUMP,)):
    """Create a backup set directory with placeholder artifacts."""
    path = os.path.join(settings.backup_root, f"bak.{project}", timestamp)
    os.makedirs(path, exist_ok=True)
    for name in artifacts:
        write_file(os.path.join(path, name), f"{name} of {timestamp}")
    if complete:
        write_file(os.path.join(path, METADATA), "=== Backup Metadata ===\n")
    return path


def tree(path):
    """Relative file paths and contents below ``path``."""
    result = {}
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            full = os.path.join(dirpath, name)
            with open(full, "rb") as f:
                result[os.path.relpath(full, path)] = f.read()
    return result


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolate_filesystem(temp_directory, monkeypatch):
    """Isolate filesystem operations to temporary directory."""
    monkeypatch.chdir(temp_directory)
    monkeypatch.delenv("KOH_BACKUP_CONFIG", raising=False)
    monkeypatch.setenv("HOME", temp_directory)
    return temp_directory


@pytest.fixture(autouse=True)
def reset_logging():
    """Detach handlers installed by setup_logging during a test."""
    yield
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_koh_backup", False):
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(logging.WARNING)


@pytest.fixture
def settings(temp_directory):
    """Settings pointing at an empty project root and backup root."""
    project_root = os.path.join(temp_directory, "public_html")
    backup_root = os.path.join(temp_directory, "backup")
    os.makedirs(project_root)
    os.makedirs(backup_root)
    return Settings(
        project_root=project_root,
        backup_root=backup_root,
        max_backups=2,
        compression_level=6,
        compressor="gzip",
        cache_cleanup_delay=0,
    )


@pytest.fixture
def demo_project(settings):
    """The 'demo' project below the settings' project root."""
    return make_project(settings.project_root, "demo")


@pytest.fixture
def fake_db():
    """Fake MySQL client holding a small shop schema."""
    return FakeMySQLClient(tables=["tartikel", "tkunde", "tbestellung"])
