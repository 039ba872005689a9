#!/usr/bin/env python3

"""Host-level operations: look up a configured host, open its execution context and run one operation on it."""

from typing import Callable, ContextManager, List, Optional, Set

from hostbackup.config import HostConfig, Target, get_target
from hostbackup.context import ExecutionContext, RemoteFactory, local_addresses, open_context, remote_executor
from hostbackup.data_structures import BackupSummary, RestoreSummary
from hostbackup.logger import logger
from hostbackup.orchestrator import BackupListing, BackupOrchestrator, RestoreOrchestrator, list_backups


class HostBackup:
    """Runs backups, restores and listings for the hosts of one configuration.

    Every operation opens its own execution context and releases it before returning, also on errors.
    """

    def __init__(
        self,
        config: HostConfig,
        address_provider: Callable[[], Set[str]] = local_addresses,
        remote_factory: RemoteFactory = remote_executor,
    ) -> None:
        """Constructor.

        Args:
            config (HostConfig): Loaded configuration.
            address_provider (Callable[[], Set[str]]): Returns the local interface addresses. Defaults to
                local_addresses.
            remote_factory (RemoteFactory): Creates remote executors. Defaults to remote_executor.
        """
        self.config = config
        self.address_provider = address_provider
        self.remote_factory = remote_factory

    def backup_host(self, hostname: str) -> BackupSummary:
        """Creates a backup of all volumes and bind mounts of a host.

        Args:
            hostname (str): Configured host name.

        Raises:
            HostBackupError: On configuration, precondition or transport errors.

        Returns:
            BackupSummary: Summary of the backup.
        """
        target = get_target(self.config, hostname)

        with self._open(target) as context:
            return BackupOrchestrator(context, target, image=self.config.settings.archive_image).run()

    def list_host_backups(self, hostname: str) -> List[BackupListing]:
        """Lists and logs the backups of a host, newest first."""
        target = get_target(self.config, hostname)

        with self._open(target) as context:
            backups = list_backups(context, target)

        if not backups:
            logger.info(f"No backups found for '{target.name}' in '{target.backup_path}'.")
            return backups

        logger.info(f"Available backups for '{target.name}' ({target.backup_path}):")
        for backup in backups:
            if backup.manifest is None:
                logger.info(f"  {backup.name}")
            else:
                logger.info(f"  {backup.name}  {backup.manifest.date}  {backup.manifest.count} volume(s)")

        return backups

    def restore_host(self, hostname: str, backup_name: Optional[str] = None) -> Optional[RestoreSummary]:
        """Restores the volumes of a host from a backup.

        Without a backup name nothing is restored; the available backups are listed instead.

        Args:
            hostname (str): Configured host name.
            backup_name (Optional[str]): Name of the backup directory, e.g. '20240131_174502'. Defaults to None.

        Raises:
            HostBackupError: On configuration, precondition or transport errors.

        Returns:
            Optional[RestoreSummary]: Summary of the restore, None if no backup name was given.
        """
        if not backup_name:
            self.list_host_backups(hostname)
            logger.info(f"Use: hostbackup {hostname} restore --backup <backup-name>")
            return None

        target = get_target(self.config, hostname)

        with self._open(target) as context:
            return RestoreOrchestrator(context, target, backup_name, image=self.config.settings.archive_image).run()

    def _open(self, target: Target) -> ContextManager[ExecutionContext]:
        return open_context(
            target,
            self.config.settings,
            address_provider=self.address_provider,
            remote_factory=self.remote_factory,
        )
