"""The two execution backends: the local machine and a remote machine over SSH."""

from typing import Union

from hostbackup.executors.local import LocalExecutor
from hostbackup.executors.remote import RemoteExecutor

Executor = Union[LocalExecutor, RemoteExecutor]

__all__ = ["Executor", "LocalExecutor", "RemoteExecutor"]
