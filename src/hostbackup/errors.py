"""Errors raised by hostbackup."""

from typing import List, Optional


class HostBackupError(Exception):
    def __init__(self, msg: Optional[str] = None):
        super().__init__(msg)


class ConfigurationError(HostBackupError):
    """Missing or invalid host configuration. Raised before anything on the target is modified."""


class PreconditionError(HostBackupError):
    """The target is not in a state that allows the operation, e.g. the backup share is not mounted."""

    def __init__(self, msg: Optional[str] = None, path: Optional[str] = None, available: Optional[List[str]] = None):
        super().__init__(msg)
        self.path = path
        self.available = available if available is not None else []


class TransportError(HostBackupError):
    """The SSH session to a remote target failed. Never retried."""


class CommandFailedError(HostBackupError):
    """A filesystem primitive or a required listing command failed on the target."""


class PathNotFoundError(HostBackupError):
    """A path required by an operation does not exist on the target."""
