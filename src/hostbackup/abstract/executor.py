"""This module defines the operation set every executor provides, local or remote."""

from typing import List, Protocol

from hostbackup.data_structures import CommandResult


class ExecutionCapability(Protocol):
    """Filesystem and shell primitives with identical observable behaviour on every target.

    Implementations raise TransportError when the connection to the target fails, PathNotFoundError when a required
    path does not exist and CommandFailedError when a filesystem primitive fails for any other reason.
    run_shell_command() never raises on a non-zero exit status; callers inspect CommandResult.exit_status.
    """

    def is_directory(self, path: str) -> bool:
        ...

    def list_directory(self, path: str) -> List[str]:
        ...

    def file_exists(self, path: str) -> bool:
        ...

    def mkdir_recursive(self, path: str) -> None:
        ...

    def write_file(self, path: str, data: bytes) -> None:
        ...

    def run_shell_command(self, command: str) -> CommandResult:
        ...

    def close(self) -> None:
        ...
