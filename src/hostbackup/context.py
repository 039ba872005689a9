#!/usr/bin/env python3

"""Decides whether a target is this machine or a remote one and creates the matching executor."""

import ipaddress
import socket
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generator, Set

import psutil

from hostbackup.config import LOCAL_ALIAS, Settings, Target
from hostbackup.errors import ConfigurationError
from hostbackup.executors import Executor, LocalExecutor, RemoteExecutor
from hostbackup.logger import logger

RemoteFactory = Callable[[str, Settings], RemoteExecutor]


@dataclass
class ExecutionContext:
    executor: Executor
    is_local: bool
    display_address: str

    def close(self) -> None:
        self.executor.close()


def _normalise_address(address: str) -> str:
    # IPv6 link-local addresses carry an interface scope suffix, e.g. 'fe80::1%eth0'
    address = address.split("%")[0]
    try:
        return str(ipaddress.ip_address(address))
    except ValueError:
        return address


def local_addresses() -> Set[str]:
    """Returns the IPv4 and IPv6 addresses bound to any local network interface.

    Returns:
        Set[str]: Normalised addresses, loopback included.
    """
    addresses: Set[str] = set()

    for interface_addresses in psutil.net_if_addrs().values():
        for address in interface_addresses:
            if address.family in (socket.AF_INET, socket.AF_INET6):
                addresses.add(_normalise_address(address.address))

    return addresses


def is_local_target(target: Target, addresses: Set[str]) -> bool:
    """Checks whether a target is the machine hostbackup runs on.

    Args:
        target (Target): Target to classify.
        addresses (Set[str]): Addresses bound to local interfaces.

    Returns:
        bool: True for the local alias or if the target's configured IP is bound locally.
    """
    if target.name == LOCAL_ALIAS:
        return True

    if target.ip is None:
        return False

    return _normalise_address(target.ip) in addresses


def remote_executor(host: str, settings: Settings) -> RemoteExecutor:
    return RemoteExecutor(
        host,
        user=settings.ssh_user,
        port=settings.ssh_port,
        key_filename=settings.ssh_key_file,
        connect_timeout=settings.connect_timeout,
    )


def resolve_context(
    target: Target,
    settings: Settings,
    address_provider: Callable[[], Set[str]] = local_addresses,
    remote_factory: RemoteFactory = remote_executor,
) -> ExecutionContext:
    """Resolves the execution context for a target.

    Remote targets are connected to right away, so that an unreachable host fails before anything is modified.

    Args:
        target (Target): Target to resolve.
        settings (Settings): Connection settings.
        address_provider (Callable[[], Set[str]]): Returns the local interface addresses. Defaults to
            local_addresses.
        remote_factory (RemoteFactory): Creates the (unconnected) remote executor. Defaults to remote_executor.

    Raises:
        ConfigurationError: If the target is not local and has neither an IP nor an SSH alias.
        TransportError: If the SSH session cannot be established.

    Returns:
        ExecutionContext: Resolved context.
    """
    if target.name == LOCAL_ALIAS or (target.ip is not None and is_local_target(target, address_provider())):
        display_address = target.ip or target.name
        logger.info(f"Host '{target.name}' ({display_address}) is this machine, executing locally.")
        return ExecutionContext(executor=LocalExecutor(), is_local=True, display_address=display_address)

    connection_host = target.connection_host
    if connection_host is None:
        raise ConfigurationError(
            f"No IP or Tailscale hostname configured for '{target.name}'.\n\n"
            f"Add configuration to .env:\n"
            f'  HOST_{target.name.upper()}_IP="<ip-address>"\n'
            f'  HOST_{target.name.upper()}_TAILSCALE="<tailscale-hostname>"'
        )

    executor = remote_factory(connection_host, settings)
    executor.connect()

    return ExecutionContext(executor=executor, is_local=False, display_address=connection_host)


@contextmanager
def open_context(
    target: Target,
    settings: Settings,
    address_provider: Callable[[], Set[str]] = local_addresses,
    remote_factory: RemoteFactory = remote_executor,
) -> Generator[ExecutionContext, None, None]:
    """Provides a resolved execution context and releases it (closing any SSH session) on every exit path."""
    context = resolve_context(target, settings, address_provider=address_provider, remote_factory=remote_factory)
    try:
        yield context
    finally:
        context.close()
