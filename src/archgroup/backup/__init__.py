"""Named saves and rollback of member assignments."""

from archgroup.backup.manager import BackupManager

__all__ = ["BackupManager"]
