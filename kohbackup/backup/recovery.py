"""Destructive restore of a project from one of its backup sets."""

import logging
import os
from typing import Optional

from kohbackup.config.manager import Settings
from kohbackup.utils.errors import (
    EXIT_OK,
    EXIT_RESTORE_MEDIA_FAILED,
    EXIT_RESTORE_WEB_FAILED,
    EXIT_SETUP,
    ArchiveExtractError,
    ConfigNotFoundError,
    DatabaseError,
    ErrorHandler,
    KohBackupError,
    NoBackupsFoundError,
    RestoreDbFailedError,
    RestoreFilesFailedError,
    SetupError,
    create_error_suggestions,
)
from kohbackup.utils.files import purge_directory
from kohbackup.utils.logging import log_success
from kohbackup.utils.prompts import Chooser

from .credentials import Credentials, extract_credentials_from_archive
from .database import MySQLClient
from .manager import select_project
from .storage import DB_DUMP, MEDIA_ARCHIVE, WEB_ARCHIVE, ArtifactStore, BackupSet

logger = logging.getLogger(__name__)

CONFIRMATION_TOKEN = "ja"

WARNING_TEMPLATE = """
================ WARNING! ================
You are about to restore project '{project}'.
The selected backup is from: {timestamp}.
This performs the following actions:
  1. ALL tables in the project database are dropped.
  2. Everything inside the web directory {web_root} is deleted.
  3. Database and files are restored from the backup.
This action can NOT be undone.
=========================================="""


def describe_backup_set(backup_set: BackupSet) -> str:
    """One-line label of a backup set for selection menus."""
    present = backup_set.artifacts()
    artifacts = ((DB_DUMP, "db"), (WEB_ARCHIVE, "web"), (MEDIA_ARCHIVE, "media"))
    parts = [label for name, label in artifacts if name in present]
    label = f"{backup_set.timestamp} ({'+'.join(parts) or 'empty'})"
    if not backup_set.complete:
        label += " [incomplete]"
    return label


class RecoveryManager:
    """Restores a project's database and files from a backup set.

    Nothing is touched before the operator types the confirmation token,
    and sets lacking the dump or the web archive are refused before asking.
    After that the order is fixed: drop all tables, empty the web root,
    replay the dump, unpack web files, unpack media files. A failed database
    restore stops the run before any file is written.
    """

    def __init__(
        self,
        settings: Settings,
        chooser: Chooser,
        store: Optional[ArtifactStore] = None,
        database: Optional[MySQLClient] = None,
        log: Optional[logging.Logger] = None,
        verbose: bool = False,
    ):
        """
        Initialize recovery manager.

        Args:
            settings: Effective settings
            chooser: Selection capability for project, backup set and confirmation
            store: Artifact store (built from settings if omitted)
            database: MySQL client (built from settings if omitted)
            log: Logger receiving progress messages
            verbose: Show tracebacks for errors
        """
        self.settings = settings
        self.chooser = chooser
        self.log = log or logger
        self.database = database or MySQLClient(settings.mysql_binary, settings.mysqldump_binary)
        self.store = store or ArtifactStore(
            settings.backup_root,
            compressor=settings.compressor,
            database=self.database,
            log=self.log,
        )
        self.error_handler = ErrorHandler(verbose=verbose)

    def select_backup_set(self, project: str, timestamp: Optional[str] = None) -> BackupSet:
        """
        Resolve the backup set to restore, newest first in the menu.

        Raises:
            NoBackupsFoundError: If the project has no backup sets
            SetupError: For an unknown timestamp or a cancelled selection
        """
        base = self.store.project_backup_dir(project)
        if not os.path.isdir(base):
            raise NoBackupsFoundError(
                f"No backup directory for project '{project}' found: {base}",
                suggestions=create_error_suggestions("no_backups"),
            )

        backup_sets = self.store.list_backup_sets(project)
        if not backup_sets:
            raise NoBackupsFoundError(
                f"No backups for project '{project}' in {base}",
                suggestions=create_error_suggestions("no_backups"),
            )

        if timestamp is not None:
            for backup_set in backup_sets:
                if backup_set.timestamp == timestamp:
                    return backup_set
            raise SetupError(
                f"Backup '{timestamp}' not found for project '{project}'",
                details=f"Available: {', '.join(b.timestamp for b in backup_sets)}",
            )

        index = self.chooser.choose(
            "Select backup to restore:",
            [describe_backup_set(backup_set) for backup_set in backup_sets],
        )
        if index is None:
            raise SetupError("No backup selected")
        return backup_sets[index]

    def confirm(self, project: str, backup_set: BackupSet) -> bool:
        """Show the destructive-action warning; True only for the exact token."""
        self.chooser.show(
            WARNING_TEMPLATE.format(
                project=project,
                timestamp=backup_set.timestamp,
                web_root=self.settings.project_dir(project),
            )
        )
        if not backup_set.complete:
            self.chooser.show("Note: this backup set has no metadata and may be incomplete.")

        answer = self.chooser.ask(f"Are you sure you want to continue? ({CONFIRMATION_TOKEN}/nein)")
        return answer == CONFIRMATION_TOKEN

    def load_credentials(self, project: str, backup_set: BackupSet) -> Credentials:
        """Credentials from the config file inside the backup's web archive."""
        self.log.info("Extracting DB credentials from the config file inside the backup...")
        return extract_credentials_from_archive(
            backup_set.web_archive,
            self.settings.config_member(project),
            tar_binary=self.store.tar_binary,
        )

    def drop_all_tables(self, credentials: Credentials) -> None:
        self.log.info("Emptying database '%s'...", credentials.name)
        dropped = self.database.drop_all_tables(credentials)
        if dropped:
            log_success(self.log, "Dropped %d tables.", len(dropped))
        else:
            self.log.info("Database is already empty.")

    def wipe_web_root(self, project: str) -> None:
        web_root = self.settings.project_dir(project)
        self.log.info("Emptying web directory: %s...", web_root)
        purge_directory(web_root)
        log_success(self.log, "Web directory emptied.")

    def restore_database(self, credentials: Credentials, backup_set: BackupSet) -> None:
        self.log.info("Restoring database from %s...", backup_set.db_dump)
        try:
            self.database.restore(credentials, backup_set.db_dump)
        except DatabaseError as e:
            raise RestoreDbFailedError(e.message, details=e.details, suggestions=e.suggestions) from e
        except OSError as e:
            raise RestoreDbFailedError(f"Could not restore database from {backup_set.db_dump}", details=str(e)) from e
        log_success(self.log, "Database restored.")

    def restore_files(self, archive_path: str, dest_dir: str, exit_code: int, label: str) -> None:
        if not os.path.isfile(archive_path):
            self.log.debug("No %s archive in backup, skipping", label)
            return

        self.log.info("Restoring %s files from %s...", label, archive_path)
        try:
            self.store.extract_archive(archive_path, dest_dir)
        except ArchiveExtractError as e:
            raise RestoreFilesFailedError(
                f"Restoring {label} files failed: {e.message}",
                details=e.details,
                exit_code=exit_code,
            ) from e
        log_success(self.log, "%s files restored.", label.capitalize())

    def restore(self, project: str, backup_set: BackupSet) -> None:
        """
        Run the destructive restore sequence. Assumes prior confirmation.

        Raises:
            KohBackupError: On the first failing step
        """
        self.log.info("Starting restore...")
        credentials = self.load_credentials(project, backup_set)
        log_success(self.log, "DB credentials extracted.")

        self.drop_all_tables(credentials)
        self.wipe_web_root(project)
        self.restore_database(credentials, backup_set)

        self.restore_files(backup_set.web_archive, self.settings.project_root, EXIT_RESTORE_WEB_FAILED, "web")
        self.restore_files(
            backup_set.media_archive,
            self.settings.project_dir(project),
            EXIT_RESTORE_MEDIA_FAILED,
            "media",
        )

        log_success(
            self.log,
            "Project '%s' was restored from the backup of %s.",
            project,
            backup_set.timestamp,
        )
        self.log.info("Remember to check file permissions and clear caches if necessary.")

    def run(self, project: Optional[str] = None, timestamp: Optional[str] = None) -> int:
        """
        Select, confirm and restore; map the outcome to an exit code.

        Args:
            project: Project name; asked for if omitted
            timestamp: Backup set timestamp; asked for if omitted

        Returns:
            int: Process exit code; 0 also when the operator cancels
        """
        self.log.info("Restore started.")
        try:
            project = select_project(self.settings, self.chooser, project, title="Select project to restore:")
            log_success(self.log, "Project '%s' selected.", project)

            backup_set = self.select_backup_set(project, timestamp)
            log_success(self.log, "Backup '%s' selected.", backup_set.timestamp)

            if not os.path.isfile(backup_set.db_dump):
                raise SetupError(f"Backup {backup_set.path} contains no database dump")
            if not os.path.isfile(backup_set.web_archive):
                raise ConfigNotFoundError(
                    f"Backup {backup_set.path} contains no web archive",
                    details="The database credentials and the shop code are only restored from web_backup.tar.gz",
                    suggestions=["Choose a backup created with mode 'all' or 'web_only'"],
                )

            if not self.confirm(project, backup_set):
                self.log.warning("Restore cancelled by user.")
                return EXIT_OK

            self.restore(project, backup_set)
            return EXIT_OK
        except KohBackupError as e:
            self.log.error(e.message)
            self.error_handler.handle_error(e, context="Restore")
            return e.exit_code
        except OSError as e:
            self.log.error("%s", e)
            self.error_handler.handle_error(e, context="Restore")
            return EXIT_SETUP
        except KeyboardInterrupt:
            self.log.error("Restore interrupted.")
            return EXIT_SETUP

