#!/usr/bin/env python3

"""Archiving of Docker volumes and bind mounts, and restoring volumes from archives."""

from pathlib import PurePosixPath
from typing import List, Set

from hostbackup.abstract.executor import ExecutionCapability
from hostbackup.data_structures import ArtifactOutcome, BindMount
from hostbackup.docker import commands
from hostbackup.errors import CommandFailedError
from hostbackup.logger import logger
from hostbackup.utils import archive_name, last_path_component, split_lines, strip_archive_suffix


class VolumeArchiver:
    """Archives and restores volumes and bind mounts of one target, one item at a time.

    Every archive is created by an ephemeral container, so nothing but the docker CLI is required on the target.
    Per-item failures are returned as ArtifactOutcome instances and never abort the remaining items.
    """

    def __init__(self, executor: ExecutionCapability, image: str = "alpine") -> None:
        """Constructor.

        Args:
            executor (ExecutionCapability): Executor of the target.
            image (str): Image of the ephemeral archive containers. Defaults to "alpine".
        """
        self.executor = executor
        self.image = image
        # archive paths claimed so far, shared by volumes and bind mounts
        self.produced: Set[str] = set()

    def list_volumes(self) -> List[str]:
        return self._list(commands.list_volumes(), "volumes")

    def list_containers(self) -> List[str]:
        """Lists the names of all containers, running or not."""
        return self._list(commands.list_containers(), "containers")

    def bind_mounts(self, container: str) -> List[BindMount]:
        sources = self._list(commands.inspect_bind_mounts(container), f"bind mounts of container '{container}'")
        return [BindMount(container=container, source=source) for source in sources]

    def backup_volumes(self, backup_dir: str, volumes: List[str]) -> List[ArtifactOutcome]:
        """Archives each volume into '<backup_dir>/<volume>.tar.gz'.

        Args:
            backup_dir (str): Backup directory on the target.
            volumes (List[str]): Volume names, archived in this order.

        Returns:
            List[ArtifactOutcome]: One outcome per volume.
        """
        outcomes: List[ArtifactOutcome] = []

        for volume in volumes:
            archive = archive_name(volume)
            if not self._claim(backup_dir, archive):
                outcomes.append(self._collision(volume, archive))
                continue

            logger.info(f"Backing up volume '{volume}'...")

            result = self.executor.run_shell_command(commands.archive(volume, backup_dir, archive, self.image))

            if result.ok:
                logger.info(f"Volume '{volume}' backed up as '{archive}'.")
                outcomes.append(ArtifactOutcome.succeeded(volume, archive))
            else:
                logger.error(f"Failed to back up volume '{volume}': '{result.stderr.strip()}'.")
                outcomes.append(ArtifactOutcome.failed(volume, result.stderr.strip(), archive))

        return outcomes

    def backup_bind_mounts(self, backup_dir: str) -> List[ArtifactOutcome]:
        """Archives the bind mounts of all containers into '<backup_dir>/<container>_<mount>.tar.gz'.

        Bind mount sources which are not an existing directory on the target are skipped. Bind mount directories are
        frequently owned by another user than the one running the backup, so a failed archive command is retried once
        with 'sudo'.

        A bind mount whose archive name was already used in the same backup directory, e.g. '/srv/a/data' and
        '/srv/b/data' of one container, is recorded as failed instead of overwriting the earlier archive.

        Args:
            backup_dir (str): Backup directory on the target.

        Returns:
            List[ArtifactOutcome]: One outcome per archived bind mount, plus one failed outcome per container whose
                bind mounts could not be inspected.
        """
        outcomes: List[ArtifactOutcome] = []

        for container in self.list_containers():
            try:
                mounts = self.bind_mounts(container)
            except CommandFailedError as error:
                logger.error(str(error))
                outcomes.append(ArtifactOutcome.failed(container, str(error)))
                continue

            for mount in mounts:
                if not self.executor.is_directory(mount.source):
                    logger.debug(f"Skipping bind mount '{mount.source}' of '{container}': Not a directory.")
                    continue

                outcomes.append(self._backup_bind_mount(mount, backup_dir))

        return outcomes

    def restore_archives(self, backup_dir: str) -> List[ArtifactOutcome]:
        """Restores every '*.tar.gz' file directly inside the backup directory into the volume named after it.

        Missing volumes are created. Entries which are no '.tar.gz' file are skipped.

        Args:
            backup_dir (str): Backup directory on the target.

        Returns:
            List[ArtifactOutcome]: One outcome per archive.
        """
        outcomes: List[ArtifactOutcome] = []

        for entry in self.executor.list_directory(backup_dir):
            volume = strip_archive_suffix(entry)
            if not volume:
                continue
            if not self.executor.file_exists(str(PurePosixPath(backup_dir, entry))):
                continue

            logger.info(f"Restoring volume '{volume}' from '{entry}'...")
            outcomes.append(self._restore_volume(volume, backup_dir, entry))

        return outcomes

    def _backup_bind_mount(self, mount: BindMount, backup_dir: str) -> ArtifactOutcome:
        backup_name = f"{mount.container}_{last_path_component(mount.source)}"
        archive = archive_name(backup_name)
        command = commands.archive(mount.source, backup_dir, archive, self.image)
        item = f"{mount.container}:{mount.source}"

        if not self._claim(backup_dir, archive):
            return self._collision(item, archive)

        logger.info(f"Backing up bind mount '{mount.source}' of container '{mount.container}'...")

        result = self.executor.run_shell_command(command)
        if not result.ok:
            logger.warning(f"Backup of bind mount '{mount.source}' failed, retrying with elevated privileges.")
            result = self.executor.run_shell_command(commands.sudo(command))

        if result.ok:
            logger.info(f"Bind mount '{mount.source}' backed up as '{archive}'.")
            return ArtifactOutcome.succeeded(item, archive)

        logger.error(f"Failed to back up bind mount '{mount.source}': '{result.stderr.strip()}'.")
        return ArtifactOutcome.failed(item, result.stderr.strip(), archive)

    def _restore_volume(self, volume: str, backup_dir: str, archive: str) -> ArtifactOutcome:
        if not self.executor.run_shell_command(commands.inspect_volume(volume)).ok:
            created = self.executor.run_shell_command(commands.create_volume(volume))
            if not created.ok:
                logger.error(f"Failed to create volume '{volume}': '{created.stderr.strip()}'.")
                return ArtifactOutcome.failed(volume, created.stderr.strip(), archive)
            logger.info(f"Created volume '{volume}'.")

        result = self.executor.run_shell_command(commands.restore(volume, backup_dir, archive, self.image))

        if result.ok:
            logger.info(f"Restored volume '{volume}'.")
            return ArtifactOutcome.succeeded(volume, archive)

        logger.error(f"Failed to restore volume '{volume}': '{result.stderr.strip()}'.")
        return ArtifactOutcome.failed(volume, result.stderr.strip(), archive)

    def _list(self, command: str, what: str) -> List[str]:
        result = self.executor.run_shell_command(command)

        if not result.ok:
            raise CommandFailedError(f"Failed to list {what}: '{result.stderr.strip()}'.")

        return split_lines(result.stdout)

    def _claim(self, backup_dir: str, archive: str) -> bool:
        path = str(PurePosixPath(backup_dir, archive))
        if path in self.produced:
            return False
        self.produced.add(path)
        return True

    def _collision(self, item: str, archive: str) -> ArtifactOutcome:
        error = f"Archive name collides with '{archive}', which was already written in this backup."
        logger.error(f"Not backing up '{item}': {error}")
        return ArtifactOutcome.failed(item, error, archive)
