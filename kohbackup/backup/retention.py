"""Retention policy enforcement for backup sets."""

import logging
import shutil
from typing import List, Optional

from .storage import ArtifactStore, BackupSet

logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Keeps the newest complete backup sets of a project and deletes the rest.

    Incomplete sets (no metadata file) are neither counted toward the
    keep-count nor deleted; they are only reported.
    """

    def __init__(self, store: ArtifactStore, log: Optional[logging.Logger] = None):
        self.store = store
        self.log = log or logger

    def plan(self, project: str, keep_count: int) -> List[BackupSet]:
        """Return the sets ``rotate`` would delete, oldest first."""
        complete = [backup_set for backup_set in self.store.list_backup_sets(project) if backup_set.complete]
        excess = complete[max(keep_count, 0):]
        return list(reversed(excess))

    def rotate(self, project: str, keep_count: int) -> List[BackupSet]:
        """
        Delete all but the ``keep_count`` newest complete sets of ``project``.

        A ``keep_count`` of zero or less removes every complete set. Deletion
        errors propagate.

        Returns:
            List[BackupSet]: Deleted sets, oldest first
        """
        base = self.store.project_backup_dir(project)
        self.log.info("Rotating backups of %s in %s (keeping the newest %d)", project, base, keep_count)

        if keep_count <= 0:
            self.log.warning("max_backups is %d; ALL backups of %s will be deleted!", keep_count, project)

        incomplete = [backup_set for backup_set in self.store.list_backup_sets(project) if not backup_set.complete]
        for backup_set in incomplete:
            self.log.warning("Ignoring incomplete backup set (no metadata): %s", backup_set.path)

        deleted = []
        for backup_set in self.plan(project, keep_count):
            self.log.warning("Deleting old backup set: %s", backup_set.path)
            shutil.rmtree(backup_set.path)
            deleted.append(backup_set)

        return deleted
