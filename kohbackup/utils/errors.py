"""Error handling utilities for KOH Backup."""

import sys
import traceback
from typing import Optional

import click

# Process exit codes
EXIT_OK = 0
EXIT_SETUP = 1
EXIT_DUMP_FAILED = 2
EXIT_WEB_ARCHIVE_FAILED = 3
EXIT_MEDIA_ARCHIVE_FAILED = 4
EXIT_RESTORE_DB_FAILED = 5
EXIT_RESTORE_WEB_FAILED = 6
EXIT_RESTORE_MEDIA_FAILED = 7


class KohBackupError(Exception):
    """Base exception for KOH Backup errors."""

    exit_code = EXIT_SETUP

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
        exit_code: Optional[int] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        if exit_code is not None:
            self.exit_code = exit_code
        super().__init__(message)


class SetupError(KohBackupError):
    """Raised when directories, projects or configuration cannot be prepared."""

    pass


class ConfigurationError(SetupError):
    """Raised when the tool configuration is invalid or missing."""

    pass


class ConfigNotFoundError(SetupError):
    """Raised when a project's config file cannot be found."""

    pass


class MissingCredentialError(SetupError):
    """Raised when a database credential is empty after extraction."""

    pass


class NoBackupsFoundError(SetupError):
    """Raised when a project has no backup sets to restore from."""

    pass


class DatabaseError(KohBackupError):
    """Raised when a database client command fails."""

    pass


class DumpFailedError(KohBackupError):
    """Raised when the database dump fails."""

    exit_code = EXIT_DUMP_FAILED


class ArchiveFailedError(KohBackupError):
    """Raised when an archive pipeline fails."""

    exit_code = EXIT_WEB_ARCHIVE_FAILED


class ArchiveExtractError(KohBackupError):
    """Raised when an archive cannot be extracted."""

    pass


class RestoreDbFailedError(KohBackupError):
    """Raised when replaying a database dump fails."""

    exit_code = EXIT_RESTORE_DB_FAILED


class RestoreFilesFailedError(KohBackupError):
    """Raised when web or media files cannot be restored."""

    exit_code = EXIT_RESTORE_WEB_FAILED


class CorruptArtifactError(KohBackupError):
    """Raised when an artifact fails its integrity test. Never fatal."""

    pass


class CacheCleanupFailedError(KohBackupError):
    """Raised when the template cache could not be emptied. Never fatal."""

    pass


class ErrorHandler:
    """Handles and formats errors for user-friendly display."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Handle and display error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Optional context about when/where error occurred
        """
        if isinstance(error, KohBackupError):
            self._handle_backup_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_backup_error(self, error: KohBackupError, context: Optional[str]) -> None:
        """Handle KOH Backup specific errors."""
        click.echo(f"✗ {error.message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if error.details:
            click.echo(f"Details: {error.details}", err=True)

        if error.suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in error.suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def _handle_generic_error(self, error: Exception, context: Optional[str]) -> None:
        """Handle generic Python exceptions."""
        error_type = type(error).__name__

        if isinstance(error, FileNotFoundError):
            message = f"File not found: {error}"
            suggestions = [
                "Check that the file path is correct",
                "Ensure the file exists and is readable",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check file/directory permissions",
                "Run as the user owning the web space",
            ]
        else:
            message = f"{error_type}: {error}"
            suggestions = []

        click.echo(f"✗ {message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_code_for(self, error: Exception) -> int:
        """Map an exception to the documented process exit code."""
        if isinstance(error, KohBackupError):
            return error.exit_code
        return EXIT_SETUP

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: Optional[int] = None) -> None:
        """Handle error and exit with its exit code (or the one given)."""
        self.handle_error(error, context)
        sys.exit(exit_code if exit_code is not None else self.exit_code_for(error))


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type and context.

    Args:
        error_type: Type of error
        **kwargs: Additional context information

    Returns:
        list: List of suggestion strings
    """
    suggestions = {
        "config_not_found": [
            f"Check that {kwargs.get('path', 'the config file')} exists",
            "Verify the 'config_file' setting in koh-backup.yml",
        ],
        "missing_credential": [
            "Check the define() statements for DB_HOST, DB_NAME, DB_USER and DB_PASS",
            "Values must be quoted string literals",
        ],
        "mysql_failed": [
            "Verify the database server is reachable",
            "Check that the extracted user may access the database",
        ],
        "archive_failed": [
            "Check free disk space in the backup root",
            f"Make sure '{kwargs.get('compressor', 'pigz')}' and 'tar' are installed",
        ],
        "no_backups": [
            "Run 'koh-backup backup' for this project first",
            "Check the 'backup_root' setting in koh-backup.yml",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
