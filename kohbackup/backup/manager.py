"""Backup orchestration for web shop projects."""

import logging
import os
import time
from enum import Enum
from typing import Callable, List, Optional

from kohbackup.config.manager import Settings
from kohbackup.utils.errors import (
    EXIT_MEDIA_ARCHIVE_FAILED,
    EXIT_OK,
    EXIT_SETUP,
    ArchiveFailedError,
    CacheCleanupFailedError,
    CorruptArtifactError,
    ErrorHandler,
    KohBackupError,
    SetupError,
)
from kohbackup.utils.files import human_size, purge_directory, remaining_entries, remove_path
from kohbackup.utils.logging import log_success, run_log
from kohbackup.utils.prompts import Chooser
from kohbackup.utils.retry import retry

from .credentials import Credentials, extract_credentials
from .database import MySQLClient
from .retention import RetentionManager
from .storage import RUN_LOG, ArtifactStore, BackupSet

logger = logging.getLogger(__name__)


class BackupMode(Enum):
    """What a backup run archives besides the database."""

    ALL = "all"
    WEB_ONLY = "web_only"
    MEDIA_ONLY = "media_only"

    @property
    def label(self) -> str:
        return {
            BackupMode.ALL: "Everything (web + media)",
            BackupMode.WEB_ONLY: "Web only",
            BackupMode.MEDIA_ONLY: "Media only",
        }[self]

    @property
    def includes_web(self) -> bool:
        return self in (BackupMode.ALL, BackupMode.WEB_ONLY)

    @property
    def includes_media(self) -> bool:
        return self in (BackupMode.ALL, BackupMode.MEDIA_ONLY)


def list_projects(settings: Settings) -> List[str]:
    """Project directories directly under the project root, sorted by name."""
    if not os.path.isdir(settings.project_root):
        raise SetupError(
            f"Project root not found: {settings.project_root}",
            suggestions=["Check the 'project_root' setting in koh-backup.yml"],
        )
    return sorted(
        name
        for name in os.listdir(settings.project_root)
        if not name.startswith(".") and os.path.isdir(os.path.join(settings.project_root, name))
    )


def select_project(
    settings: Settings,
    chooser: Chooser,
    project: Optional[str] = None,
    title: str = "Select project directory:",
) -> str:
    """
    Resolve the project to work on, asking the chooser if none is given.

    Raises:
        SetupError: For an unknown project or a cancelled selection
    """
    projects = list_projects(settings)

    if project is not None:
        if project not in projects:
            raise SetupError(
                f"Unknown project: {project}",
                details=f"Known projects: {', '.join(projects) or 'none'}",
            )
        return project

    if not projects:
        raise SetupError(f"No projects found in {settings.project_root}")

    index = chooser.choose(title, projects)
    if index is None:
        raise SetupError("No project selected")
    return projects[index]


class BackupManager:
    """Runs one backup of one project.

    The steps run strictly in order: credentials, template cache cleanup,
    database dump, web archive, media archive, metadata, rotation. A set only
    becomes complete (and subject to rotation) once its metadata is written.
    """

    def __init__(
        self,
        settings: Settings,
        chooser: Chooser,
        store: Optional[ArtifactStore] = None,
        retention: Optional[RetentionManager] = None,
        log: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
        verbose: bool = False,
    ):
        """
        Initialize backup manager.

        Args:
            settings: Effective settings
            chooser: Selection capability for project and mode
            store: Artifact store (built from settings if omitted)
            retention: Retention manager (built from the store if omitted)
            log: Logger receiving progress messages
            sleep: Sleep function used between cache cleanup attempts
            verbose: Show tracebacks for errors
        """
        self.settings = settings
        self.chooser = chooser
        self.log = log or logger
        self.store = store or ArtifactStore(
            settings.backup_root,
            compressor=settings.compressor,
            database=MySQLClient(settings.mysql_binary, settings.mysqldump_binary),
            log=self.log,
        )
        self.retention = retention or RetentionManager(self.store, log=self.log)
        self.sleep = sleep
        self.error_handler = ErrorHandler(verbose=verbose)
        self.current_set: Optional[BackupSet] = None

    def select_mode(self, mode: Optional[str] = None) -> BackupMode:
        """Resolve the backup mode, asking the chooser if none is given."""
        if mode is not None:
            try:
                return BackupMode(mode)
            except ValueError:
                raise SetupError(f"Unknown backup mode: {mode}") from None

        modes = list(BackupMode)
        index = self.chooser.choose("Select backup mode:", [m.label for m in modes])
        if index is None:
            raise SetupError("No backup mode selected")
        return modes[index]

    def clean_template_cache(self, project: str) -> None:
        """
        Empty the project's template cache, keeping the protected entries.

        Filesystem errors are retried a few times.

        Raises:
            CacheCleanupFailedError: If entries remain after the last attempt
        """
        cache_dir = self.settings.cache_path(project)
        keep = self.settings.cache_keep

        if not os.path.isdir(cache_dir):
            self.log.info("No template cache at %s, skipping cleanup", cache_dir)
            return

        self.log.info("Cleaning cache directory: %s", cache_dir)
        cleaned = retry(
            lambda: purge_directory(cache_dir, keep),
            attempts=self.settings.cache_cleanup_attempts,
            delay=self.settings.cache_cleanup_delay,
            succeeded=lambda: not remaining_entries(cache_dir, keep),
            sleep=self.sleep,
            log=self.log,
        )

        if not cleaned:
            leftovers = remaining_entries(cache_dir, keep)
            raise CacheCleanupFailedError(
                f"Could not clean {cache_dir} after {self.settings.cache_cleanup_attempts} attempts",
                details=f"Remaining entries: {', '.join(leftovers)}",
            )
        log_success(self.log, "Cleaned %s", cache_dir)

    def _verify(self, path: str) -> None:
        try:
            self.store.verify(path)
        except CorruptArtifactError as e:
            self.log.warning("%s%s", e.message, f" ({e.details})" if e.details else "")

    def _archive_web(self, project: str, backup_set: BackupSet) -> None:
        media_dirs = self.settings.media_dirs
        self.log.info("Archiving web directory (without %s)...", ", ".join(media_dirs) or "exclusions")
        self.store.create_archive(
            self.settings.project_root,
            [project],
            [f"{project}/{entry}" for entry in media_dirs],
            backup_set.web_archive,
            self.settings.compression_level,
        )
        self._verify(backup_set.web_archive)
        log_success(self.log, "Web backup done: %s", self._size_of(backup_set.web_archive))

    def _archive_media(self, project: str, backup_set: BackupSet) -> None:
        project_dir = self.settings.project_dir(project)
        present = [entry for entry in self.settings.media_dirs if os.path.exists(os.path.join(project_dir, entry))]

        if not present:
            raise ArchiveFailedError(
                f"No media directory found in {project_dir}",
                details=f"Looked for: {', '.join(self.settings.media_dirs) or 'nothing configured'}",
                exit_code=EXIT_MEDIA_ARCHIVE_FAILED,
            )

        self.log.info("Archiving %s separately...", ", ".join(present))
        try:
            self.store.create_archive(
                project_dir,
                present,
                [],
                backup_set.media_archive,
                self.settings.compression_level,
            )
        except ArchiveFailedError as e:
            e.exit_code = EXIT_MEDIA_ARCHIVE_FAILED
            raise

        self._verify(backup_set.media_archive)
        log_success(self.log, "Media backup done: %s", self._size_of(backup_set.media_archive))

    def _size_of(self, path: str) -> str:
        return human_size(os.path.getsize(path))

    def create_backup(self, project: str, mode: BackupMode, credentials: Optional[Credentials] = None) -> BackupSet:
        """
        Produce a complete backup set of ``project``.

        Raises:
            KohBackupError: On the first fatal step; the exit code of the
                error identifies the step
        """
        backup_set = self.store.create_backup_set(project)
        self.current_set = backup_set

        with run_log(backup_set.run_log, logging.getLogger("kohbackup")):
            try:
                self.log.info("Backup directory created: %s", backup_set.path)
                self.log.info("Mode '%s' for project '%s'", mode.value, project)

                if credentials is None:
                    credentials = extract_credentials(self.settings.project_config_path(project))

                try:
                    self.clean_template_cache(project)
                except CacheCleanupFailedError as e:
                    self.log.error("%s; continuing without a clean cache", e.message)

                self.log.info("Creating database backup of '%s'...", credentials.name)
                self.store.create_database_dump(credentials, backup_set.db_dump)
                log_success(self.log, "Database backup done: %s", self._size_of(backup_set.db_dump))

                if mode.includes_web:
                    self._archive_web(project, backup_set)

                if mode.includes_media:
                    self._archive_media(project, backup_set)

                self.store.write_metadata(backup_set, project, self.settings.compression_level, mode=mode.value)
                self.retention.rotate(project, self.settings.max_backups)

                if not os.path.isdir(backup_set.path):
                    self.log.warning(
                        "Backup finished, but max_backups is %d so the new set was rotated away: %s",
                        self.settings.max_backups,
                        backup_set.path,
                    )
                else:
                    log_success(self.log, "Backup finished: %s", backup_set.path)
                    for label, size in self.store.artifact_sizes(backup_set):
                        self.log.info("- %s (%s)", label, size)
            except KohBackupError as e:
                self.log.error(e.message)
                raise
            except OSError as e:
                self.log.error("%s", e)
                raise

        self.current_set = None
        return backup_set

    def cleanup_on_error(self) -> None:
        """Remove the in-progress backup set if it holds no artifacts yet."""
        backup_set = self.current_set
        self.current_set = None
        if backup_set is None or not os.path.isdir(backup_set.path):
            return

        if remaining_entries(backup_set.path, keep=[RUN_LOG]):
            self.log.warning("Leaving incomplete backup set for inspection: %s", backup_set.path)
            return

        self.log.warning("Removing empty backup directory: %s", backup_set.path)
        remove_path(backup_set.path)

    def run(self, project: Optional[str] = None, mode: Optional[str] = None) -> int:
        """
        Run a complete backup and map the outcome to an exit code.

        Args:
            project: Project name; asked for if omitted
            mode: Backup mode value; asked for if omitted

        Returns:
            int: Process exit code
        """
        self.log.info("Backup started.")
        try:
            project = select_project(self.settings, self.chooser, project)
            backup_mode = self.select_mode(mode)
            self.create_backup(project, backup_mode)
            return EXIT_OK
        except KohBackupError as e:
            self.cleanup_on_error()
            self.error_handler.handle_error(e, context="Backup")
            return e.exit_code
        except OSError as e:
            self.cleanup_on_error()
            self.error_handler.handle_error(e, context="Backup")
            return EXIT_SETUP
        except KeyboardInterrupt:
            self.log.error("Backup interrupted.")
            self.cleanup_on_error()
            return EXIT_SETUP

