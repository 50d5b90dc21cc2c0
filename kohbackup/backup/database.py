"""MySQL client wrapper used for dumps, table cleanup and restores."""

import os
import subprocess
import tempfile
from contextlib import contextmanager
from typing import Iterator, List

from kohbackup.utils.errors import DatabaseError, create_error_suggestions

from .credentials import Credentials


def _option_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_identifier(name: str) -> str:
    """Quote a table name for MySQL."""
    return "`" + name.replace("`", "``") + "`"


def drop_tables_statement(tables: List[str]) -> str:
    """Build one batch dropping ``tables`` with foreign key checks disabled."""
    drops = " ".join(f"DROP TABLE IF EXISTS {quote_identifier(table)};" for table in tables)
    return f"SET FOREIGN_KEY_CHECKS=0; {drops} SET FOREIGN_KEY_CHECKS=1;"


class MySQLClient:
    """Runs ``mysqldump`` and ``mysql`` for one set of credentials.

    The password is handed over in a private option file instead of on the
    command line, so it never shows up in the process list.
    """

    def __init__(self, mysql_binary: str = "mysql", mysqldump_binary: str = "mysqldump"):
        self.mysql_binary = mysql_binary
        self.mysqldump_binary = mysqldump_binary

    @contextmanager
    def _options_file(self, credentials: Credentials) -> Iterator[str]:
        with tempfile.TemporaryDirectory(prefix="koh-mysql-") as scratch:
            path = os.path.join(scratch, "client.cnf")
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("[client]\n")
                f.write(f"host={_option_value(credentials.host)}\n")
                f.write(f"user={_option_value(credentials.user)}\n")
                f.write(f"password={_option_value(credentials.password)}\n")
            yield path

    def _command(self, binary: str, options_path: str, *args: str) -> List[str]:
        return [binary, f"--defaults-extra-file={options_path}", *args]

    def _check(self, result: subprocess.CompletedProcess, action: str) -> None:
        if result.returncode != 0:
            stderr = result.stderr
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            raise DatabaseError(
                f"{action} failed (exit status {result.returncode})",
                details=(stderr or "").strip() or None,
                suggestions=create_error_suggestions("mysql_failed"),
            )

    def dump(self, credentials: Credentials, dest_path: str) -> None:
        """Write a schema+data dump of the project database to ``dest_path``."""
        with self._options_file(credentials) as options:
            with open(dest_path, "wb") as out:
                result = subprocess.run(
                    self._command(self.mysqldump_binary, options, credentials.name),
                    stdout=out,
                    stderr=subprocess.PIPE,
                )
        self._check(result, f"Dump of database '{credentials.name}'")

    def list_tables(self, credentials: Credentials) -> List[str]:
        """Return the table names of the project database."""
        with self._options_file(credentials) as options:
            result = subprocess.run(
                self._command(self.mysql_binary, options, "-N", "-B", "-e", "SHOW TABLES", credentials.name),
                capture_output=True,
                text=True,
            )
        self._check(result, f"Listing tables of '{credentials.name}'")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def execute(self, credentials: Credentials, statement: str) -> None:
        """Run a statement batch against the project database."""
        with self._options_file(credentials) as options:
            result = subprocess.run(
                self._command(self.mysql_binary, options, credentials.name, "-e", statement),
                capture_output=True,
                text=True,
            )
        self._check(result, f"Statement on '{credentials.name}'")

    def drop_all_tables(self, credentials: Credentials) -> List[str]:
        """
        Drop every table of the project database in one batch.

        Returns:
            List[str]: Dropped tables; empty if the database was already empty
        """
        tables = self.list_tables(credentials)
        if not tables:
            return []
        self.execute(credentials, drop_tables_statement(tables))
        return tables

    def restore(self, credentials: Credentials, dump_path: str) -> None:
        """Replay ``dump_path`` against the project database."""
        with self._options_file(credentials) as options:
            with open(dump_path, "rb") as dump:
                result = subprocess.run(
                    self._command(self.mysql_binary, options, credentials.name),
                    stdin=dump,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                )
        self._check(result, f"Restore of database '{credentials.name}'")
