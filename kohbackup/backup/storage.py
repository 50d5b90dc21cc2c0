"""Backup artifact storage: backup sets, dumps, archives and metadata."""

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader

from kohbackup import __version__
from kohbackup.utils.errors import (
    ArchiveExtractError,
    ArchiveFailedError,
    CorruptArtifactError,
    DatabaseError,
    DumpFailedError,
    SetupError,
    create_error_suggestions,
)
from kohbackup.utils.files import human_size

from .credentials import Credentials
from .database import MySQLClient

logger = logging.getLogger(__name__)

DB_DUMP = "db_backup.sql"
WEB_ARCHIVE = "web_backup.tar.gz"
MEDIA_ARCHIVE = "media_backup.tar.gz"
METADATA = "metadata.txt"
RUN_LOG = "backup.log"

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
TIMESTAMP_PATTERN = re.compile(r"^\d{8}_\d{6}$")


@dataclass
class BackupSet:
    """One timestamped backup of a project."""

    project: str
    timestamp: str
    path: str

    def artifact(self, name: str) -> str:
        return os.path.join(self.path, name)

    @property
    def db_dump(self) -> str:
        return self.artifact(DB_DUMP)

    @property
    def web_archive(self) -> str:
        return self.artifact(WEB_ARCHIVE)

    @property
    def media_archive(self) -> str:
        return self.artifact(MEDIA_ARCHIVE)

    @property
    def metadata(self) -> str:
        return self.artifact(METADATA)

    @property
    def run_log(self) -> str:
        return self.artifact(RUN_LOG)

    @property
    def complete(self) -> bool:
        """A set is complete once its metadata file has been written."""
        return os.path.isfile(self.metadata)

    def artifacts(self) -> List[str]:
        """Names of the backup artifacts present in this set."""
        return [name for name in (DB_DUMP, WEB_ARCHIVE, MEDIA_ARCHIVE) if os.path.isfile(self.artifact(name))]


class ArtifactStore:
    """Creates, verifies and enumerates backup artifacts."""

    def __init__(
        self,
        backup_root: str,
        compressor: str = "pigz",
        tar_binary: str = "tar",
        database: Optional[MySQLClient] = None,
        log: Optional[logging.Logger] = None,
    ):
        """
        Initialize artifact store.

        Args:
            backup_root: Directory holding the bak.<project> folders
            compressor: gzip-compatible compressor (pigz or gzip)
            tar_binary: tar executable
            database: MySQL client used for dumps
            log: Logger for progress messages
        """
        self.backup_root = backup_root
        self.compressor = compressor
        self.tar_binary = tar_binary
        self.database = database or MySQLClient()
        self.log = log or logger

        templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
        self.jinja_env = Environment(loader=FileSystemLoader(templates_dir), trim_blocks=True, lstrip_blocks=True)

    def project_backup_dir(self, project: str) -> str:
        """Directory holding all backup sets of ``project``."""
        return os.path.join(self.backup_root, f"bak.{project}")

    @staticmethod
    def new_timestamp(now: Optional[datetime] = None) -> str:
        return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)

    def create_backup_set(self, project: str, timestamp: Optional[str] = None) -> BackupSet:
        """
        Create the directory of a new backup set.

        Raises:
            SetupError: If the directory cannot be created
        """
        timestamp = timestamp or self.new_timestamp()
        path = os.path.join(self.project_backup_dir(project), timestamp)
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise SetupError(f"Could not create backup directory: {path}", details=str(e)) from e
        return BackupSet(project=project, timestamp=timestamp, path=path)

    def list_backup_sets(self, project: str) -> List[BackupSet]:
        """
        List backup sets of ``project``, newest first.

        Only directories named like a timestamp are considered.
        """
        base = self.project_backup_dir(project)
        if not os.path.isdir(base):
            return []

        names = [
            name
            for name in os.listdir(base)
            if TIMESTAMP_PATTERN.match(name) and os.path.isdir(os.path.join(base, name))
        ]
        return [BackupSet(project=project, timestamp=name, path=os.path.join(base, name)) for name in sorted(names, reverse=True)]

    def create_database_dump(self, credentials: Credentials, dest_path: str) -> str:
        """
        Dump the project database to ``dest_path``.

        Raises:
            DumpFailedError: If the dump tool fails or leaves no data
        """
        try:
            self.database.dump(credentials, dest_path)
        except DatabaseError as e:
            raise DumpFailedError(e.message, details=e.details, suggestions=e.suggestions) from e
        except OSError as e:
            raise DumpFailedError(f"Could not run {self.database.mysqldump_binary}", details=str(e)) from e

        if not os.path.isfile(dest_path) or os.path.getsize(dest_path) == 0:
            raise DumpFailedError(f"Database dump is empty: {dest_path}")

        return dest_path

    def create_archive(
        self,
        source_root: str,
        relative_paths: Sequence[str],
        exclude_patterns: Sequence[str],
        dest_path: str,
        compression_level: int = 9,
    ) -> str:
        """
        Stream ``relative_paths`` below ``source_root`` through tar and the
        compressor into ``dest_path``.

        Exclude patterns are anchored at ``source_root``, so
        ``demo/media`` leaves ``demo/templates/media`` in the archive.
        Both pipeline stages are checked; the archive fails if either does.

        Raises:
            ArchiveFailedError: If tar or the compressor exits non-zero
        """
        tar_cmd = [self.tar_binary, "-cf", "-"]
        if exclude_patterns:
            tar_cmd.append("--anchored")
            tar_cmd.extend(f"--exclude={pattern}" for pattern in exclude_patterns)
        tar_cmd.extend(["-C", source_root])
        tar_cmd.extend(relative_paths)
        compress_cmd = [self.compressor, f"-{compression_level}"]

        self.log.debug("Running %s | %s > %s", " ".join(tar_cmd), " ".join(compress_cmd), dest_path)

        try:
            with open(dest_path, "wb") as out, tempfile.TemporaryFile() as tar_stderr:
                tar = subprocess.Popen(tar_cmd, stdout=subprocess.PIPE, stderr=tar_stderr)
                try:
                    compress = subprocess.Popen(compress_cmd, stdin=tar.stdout, stdout=out, stderr=subprocess.PIPE)
                except OSError:
                    tar.kill()
                    tar.wait()
                    raise
                finally:
                    # Only the compressor holds the read end from here on
                    tar.stdout.close()

                _, compress_err = compress.communicate()
                tar.wait()

                tar_stderr.seek(0)
                tar_err = tar_stderr.read()
        except OSError as e:
            raise ArchiveFailedError(
                f"Could not run archive pipeline for {dest_path}",
                details=str(e),
                suggestions=create_error_suggestions("archive_failed", compressor=self.compressor),
            ) from e

        failures = []
        if tar.returncode != 0:
            failures.append(f"tar exited with status {tar.returncode}: {tar_err.decode('utf-8', 'replace').strip()}")
        if compress.returncode != 0:
            failures.append(
                f"{self.compressor} exited with status {compress.returncode}: "
                f"{compress_err.decode('utf-8', 'replace').strip()}"
            )

        if failures:
            raise ArchiveFailedError(
                f"Creating archive {dest_path} failed",
                details="\n".join(failures),
                suggestions=create_error_suggestions("archive_failed", compressor=self.compressor),
            )

        return dest_path

    def verify(self, path: str) -> None:
        """
        Test the integrity of a compressed artifact.

        The file is left in place when the test fails.

        Raises:
            CorruptArtifactError: If the integrity test fails or cannot run
        """
        self.log.info("Verifying backup integrity: %s", path)
        try:
            result = subprocess.run([self.compressor, "-t", path], capture_output=True, text=True)
        except OSError as e:
            raise CorruptArtifactError(f"Could not verify {path}", details=str(e)) from e

        if result.returncode != 0:
            raise CorruptArtifactError(f"Backup is corrupt: {path}", details=result.stderr.strip() or None)

    def artifact_sizes(self, backup_set: BackupSet) -> List[tuple]:
        """Human readable sizes of the artifacts present in ``backup_set``."""
        labels = ((DB_DUMP, "DB backup"), (WEB_ARCHIVE, "web backup"), (MEDIA_ARCHIVE, "media backup"))
        sizes = []
        for name, label in labels:
            path = backup_set.artifact(name)
            if os.path.isfile(path):
                sizes.append((label, human_size(os.path.getsize(path))))
        return sizes

    def write_metadata(
        self,
        backup_set: BackupSet,
        project: str,
        compression_level: int,
        mode: Optional[str] = None,
    ) -> str:
        """
        Write ``metadata.txt``, which marks the set as complete.

        The file is written under a temporary name and moved into place.
        """
        template = self.jinja_env.get_template("metadata.txt.j2")
        content = template.render(
            project=project,
            date=datetime.now().strftime("%a %d %b %Y %H:%M:%S"),
            version=__version__,
            compression_level=compression_level,
            mode=mode,
            sizes=self.artifact_sizes(backup_set),
        )

        tmp_path = backup_set.metadata + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, backup_set.metadata)
        return backup_set.metadata

    def extract_archive(self, archive_path: str, dest_dir: str) -> None:
        """
        Unpack a gzip-compressed tar into ``dest_dir``.

        Raises:
            ArchiveExtractError: If tar exits non-zero
        """
        try:
            result = subprocess.run(
                [self.tar_binary, "-xzf", archive_path, "-C", dest_dir],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise ArchiveExtractError(f"Could not run {self.tar_binary}", details=str(e)) from e

        if result.returncode != 0:
            raise ArchiveExtractError(
                f"Extracting {archive_path} failed (exit status {result.returncode})",
                details=result.stderr.strip() or None,
            )
