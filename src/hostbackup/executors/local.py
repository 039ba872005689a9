#!/usr/bin/env python3

"""Executor which runs everything on the machine hostbackup itself runs on."""

import os
import subprocess
from typing import List

from hostbackup.data_structures import CommandResult
from hostbackup.errors import CommandFailedError, PathNotFoundError
from hostbackup.logger import logger


class LocalExecutor:
    """Implements the execution capability with direct OS calls and subprocesses."""

    def is_directory(self, path: str) -> bool:
        return os.path.isdir(path)

    def list_directory(self, path: str) -> List[str]:
        """Lists the names of all entries in a directory, hidden entries included.

        Args:
            path (str): Directory to list.

        Raises:
            PathNotFoundError: If the directory does not exist.
            CommandFailedError: If the directory cannot be read.

        Returns:
            List[str]: Sorted entry names.
        """
        try:
            return sorted(os.listdir(path))
        except (FileNotFoundError, NotADirectoryError) as error:
            raise PathNotFoundError(f"Directory does not exist: '{path}'.") from error
        except OSError as error:
            raise CommandFailedError(f"Failed to list directory '{path}': {error}") from error

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def mkdir_recursive(self, path: str) -> None:
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as error:
            raise CommandFailedError(f"Failed to create directory '{path}': {error}") from error

    def write_file(self, path: str, data: bytes) -> None:
        """Writes data to a file, replacing existing content. The parent directory must exist.

        Args:
            path (str): Target file.
            data (bytes): File content.

        Raises:
            PathNotFoundError: If the parent directory does not exist.
            CommandFailedError: If the file cannot be written.
        """
        try:
            with open(path, "wb") as file:
                file.write(data)
        except FileNotFoundError as error:
            raise PathNotFoundError(f"Parent directory of '{path}' does not exist.") from error
        except OSError as error:
            raise CommandFailedError(f"Failed to write file '{path}': {error}") from error

    def run_shell_command(self, command: str) -> CommandResult:
        """Runs a command through 'sh -c' and captures its output.

        Args:
            command (str): Shell command.

        Raises:
            CommandFailedError: If no shell could be started at all.

        Returns:
            CommandResult: Exit status and decoded output. A non-zero exit status is not an error.
        """
        logger.debug(f"[local] {command}")

        try:
            result: subprocess.CompletedProcess = subprocess.run(
                ("sh", "-c", command),
                stdin=subprocess.DEVNULL,
                capture_output=True,
            )
        except OSError as error:
            raise CommandFailedError(f"Failed to start shell for command '{command}': {error}") from error

        return CommandResult(
            exit_status=result.returncode,
            stdout=result.stdout.decode("utf-8", errors="replace"),
            stderr=result.stderr.decode("utf-8", errors="replace"),
        )

    def close(self) -> None:
        pass
