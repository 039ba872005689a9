#!/usr/bin/env python3

"""Executor which runs everything on a remote machine over a single SSH session."""

import posixpath
import shlex
import time
from typing import Callable, List, Optional, Tuple

import paramiko

from hostbackup.data_structures import CommandResult
from hostbackup.errors import CommandFailedError, PathNotFoundError, TransportError
from hostbackup.logger import logger
from hostbackup.utils import split_lines

# anything the session can raise while a command is in flight
TRANSPORT_EXCEPTIONS = (paramiko.SSHException, EOFError, OSError)

RECV_SIZE = 32768
POLL_INTERVAL = 0.01


class RemoteExecutor:
    """Implements the execution capability over one SSH session.

    Filesystem queries are translated into equivalent shell commands ('test -d', 'ls -1A', 'test -f', 'mkdir -p') and
    file writes stream the data to 'cat' on the remote side. The session is opened once by connect() and reused for
    every operation until close() is called.
    """

    def __init__(
        self,
        host: str,
        user: Optional[str] = None,
        port: int = 22,
        key_filename: Optional[str] = None,
        connect_timeout: float = 10.0,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        """Constructor.

        Args:
            host (str): IP address or host name to connect to.
            user (Optional[str]): Login user. Defaults to None, in which case paramiko uses the local user name.
            port (int): SSH port. Defaults to 22.
            key_filename (Optional[str]): Private key file to offer in addition to the agent and default keys.
            connect_timeout (float): Timeout for establishing the connection, in seconds. Defaults to 10.
            client_factory (Callable[[], paramiko.SSHClient]): Creates the SSH client. Defaults to paramiko.SSHClient.
        """
        self.host = host
        self.user = user
        self.port = port
        self.key_filename = key_filename
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Establishes the SSH session.

        Raises:
            TransportError: If the host cannot be reached or authentication fails.
        """
        if self._client is not None:
            return

        client = self._client_factory()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(
                self.host,
                port=self.port,
                username=self.user,
                key_filename=self.key_filename,
                timeout=self.connect_timeout,
            )
        except TRANSPORT_EXCEPTIONS as error:
            client.close()
            raise TransportError(f"Failed to connect to '{self.address}': {error}") from error

        logger.info(f"SSH session established to '{self.address}'.")
        self._client = client

    def close(self) -> None:
        if self._client is None:
            return

        self._client.close()
        self._client = None
        logger.debug(f"SSH session to '{self.address}' closed.")

    def run_shell_command(self, command: str) -> CommandResult:
        return self._execute(command)

    def is_directory(self, path: str) -> bool:
        return self._execute(f"test -d {shlex.quote(path)}").ok

    def file_exists(self, path: str) -> bool:
        return self._execute(f"test -f {shlex.quote(path)}").ok

    def list_directory(self, path: str) -> List[str]:
        result = self._execute(f"ls -1A {shlex.quote(path)}")

        if not result.ok:
            if not self.is_directory(path):
                raise PathNotFoundError(f"Directory does not exist on '{self.host}': '{path}'.")
            raise CommandFailedError(f"Failed to list directory '{path}' on '{self.host}': {result.stderr.strip()}")

        return sorted(split_lines(result.stdout))

    def mkdir_recursive(self, path: str) -> None:
        result = self._execute(f"mkdir -p {shlex.quote(path)}")

        if not result.ok:
            raise CommandFailedError(
                f"Failed to create directory '{path}' on '{self.host}': {result.stderr.strip()}"
            )

    def write_file(self, path: str, data: bytes) -> None:
        result = self._execute(f"cat > {shlex.quote(path)}", data=data)

        if not result.ok:
            parent = posixpath.dirname(path) or "."
            if not self.is_directory(parent):
                raise PathNotFoundError(f"Parent directory of '{path}' does not exist on '{self.host}'.")
            raise CommandFailedError(f"Failed to write file '{path}' on '{self.host}': {result.stderr.strip()}")

    def _execute(self, command: str, data: Optional[bytes] = None) -> CommandResult:
        """Runs a command on the open session, optionally feeding data to its stdin.

        Args:
            command (str): Shell command, interpreted by the remote user's login shell.
            data (Optional[bytes]): Bytes written to the command's stdin. Defaults to None.

        Raises:
            TransportError: If the session is not open or fails while the command runs.

        Returns:
            CommandResult: Exit status and decoded output.
        """
        if self._client is None:
            raise TransportError(f"No open SSH session to '{self.address}'.")

        logger.debug(f"[{self.address}] {command}")

        try:
            stdin, stdout, _ = self._client.exec_command(command)
            if data is not None:
                stdin.write(data)
                stdin.flush()
            stdin.channel.shutdown_write()

            out, err = drain(stdout.channel)
            exit_status = stdout.channel.recv_exit_status()
        except TRANSPORT_EXCEPTIONS as error:
            raise TransportError(f"SSH session to '{self.address}' failed during '{command}': {error}") from error

        return CommandResult(
            exit_status=exit_status,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
        )


def drain(channel: paramiko.Channel) -> Tuple[bytes, bytes]:
    """Reads stdout and stderr of a command in turns until it has exited and both streams are empty.

    Reading one stream to its end before the other blocks once the command fills the window of the unread one.

    Args:
        channel (paramiko.Channel): Channel the command runs on.

    Returns:
        Tuple[bytes, bytes]: Complete stdout and stderr.
    """
    out: List[bytes] = []
    err: List[bytes] = []

    while True:
        received = False

        if channel.recv_ready():
            out.append(channel.recv(RECV_SIZE))
            received = True
        if channel.recv_stderr_ready():
            err.append(channel.recv_stderr(RECV_SIZE))
            received = True

        if received:
            continue
        if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
            break
        time.sleep(POLL_INTERVAL)

    return b"".join(out), b"".join(err)
