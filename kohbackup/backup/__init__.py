"""Backup and restore of JTL-Shop style web projects."""

from .credentials import Credentials, extract_credentials, extract_credentials_from_archive
from .database import MySQLClient
from .manager import BackupManager, BackupMode
from .recovery import RecoveryManager
from .retention import RetentionManager
from .storage import ArtifactStore, BackupSet

__all__ = [
    "ArtifactStore",
    "BackupManager",
    "BackupMode",
    "BackupSet",
    "Credentials",
    "MySQLClient",
    "RecoveryManager",
    "RetentionManager",
    "extract_credentials",
    "extract_credentials_from_archive",
]
