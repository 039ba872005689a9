#!/usr/bin/env python3

"""Backup, restore and listing of a target's backups, sequenced on top of an execution context."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from shlex import quote
from typing import Callable, List, Optional

from hostbackup.config import Target
from hostbackup.context import ExecutionContext
from hostbackup.data_structures import ArtifactOutcome, BackupSummary, RestoreSummary
from hostbackup.docker.archiver import VolumeArchiver
from hostbackup.docker.container_utils import stopped_containers
from hostbackup.errors import CommandFailedError, HostBackupError, PathNotFoundError, PreconditionError
from hostbackup.logger import logger
from hostbackup.manifest import MANIFEST_FILE_NAME, Manifest, parse_manifest
from hostbackup.utils import human_readable_date, timestamp, utc_now


@dataclass
class BackupListing:
    name: str
    manifest: Optional[Manifest] = None


def validate_backup_root(context: ExecutionContext, backup_root: str) -> None:
    """Makes sure the backup root can be used, creating it if only the root itself is missing.

    The parent of the backup root is usually the mount point of a network share. If it does not exist the share is
    most likely not mounted, and writing backups would silently fill the local disk instead.

    Args:
        context (ExecutionContext): Context of the target.
        backup_root (str): Configured backup root.

    Raises:
        PreconditionError: If the parent of the backup root is not an existing directory.
    """
    root = PurePosixPath(backup_root)
    parent = str(root.parent)

    if not context.executor.is_directory(parent):
        raise PreconditionError(
            f"Backup root parent '{parent}' does not exist or is not mounted on '{context.display_address}'. "
            f"Make sure the backup share is mounted.",
            path=parent,
        )

    if not context.executor.is_directory(str(root)):
        logger.info(f"Creating backup root '{root}'.")
        context.executor.mkdir_recursive(str(root))


def list_backup_names(context: ExecutionContext, backup_root: str) -> List[str]:
    """Lists the names of all backup directories, newest first.

    Args:
        context (ExecutionContext): Context of the target.
        backup_root (str): Configured backup root.

    Raises:
        PreconditionError: If the backup root does not exist.

    Returns:
        List[str]: Backup names.
    """
    if not context.executor.is_directory(backup_root):
        raise PreconditionError(
            f"Backup directory '{backup_root}' does not exist or is not mounted on '{context.display_address}'.",
            path=backup_root,
        )

    try:
        entries = context.executor.list_directory(backup_root)
    except PathNotFoundError as error:
        raise PreconditionError(str(error), path=backup_root) from error

    names = [entry for entry in entries if context.executor.is_directory(str(PurePosixPath(backup_root, entry)))]
    # backup names are timestamps, so lexical order is chronological order
    return sorted(names, reverse=True)


def read_manifest(context: ExecutionContext, backup_dir: str) -> Optional[Manifest]:
    manifest_path = str(PurePosixPath(backup_dir, MANIFEST_FILE_NAME))

    if not context.executor.file_exists(manifest_path):
        return None

    result = context.executor.run_shell_command(f"cat {quote(manifest_path)}")
    if not result.ok:
        logger.warning(f"Unable to read manifest '{manifest_path}': '{result.stderr.strip()}'.")
        return None

    return parse_manifest(result.stdout)


def list_backups(context: ExecutionContext, target: Target) -> List[BackupListing]:
    """Lists the backups of a target with their manifests. Does not touch any container.

    Args:
        context (ExecutionContext): Context of the target.
        target (Target): Target whose backups are listed.

    Raises:
        ConfigurationError: If the target has no backup path.
        PreconditionError: If the backup root does not exist.

    Returns:
        List[BackupListing]: Backups, newest first.
    """
    backup_root = target.require_backup_path()

    return [
        BackupListing(name=name, manifest=read_manifest(context, str(PurePosixPath(backup_root, name))))
        for name in list_backup_names(context, backup_root)
    ]


class BackupOrchestrator:
    """Creates a full backup of a target.

    Steps, strictly in this order:
    1) Validate the backup root (before any container is touched).
    2) Create the backup directory '<backup root>/<YYYYMMDD_HHMMSS>'.
    3) Stop all running containers.
    4) Archive every volume.
    5) Archive the bind mounts of every container.
    6) Write the manifest.
    7) Restart exactly the containers stopped in 3). Runs whenever 3) ran, whatever happened in between.
    8) Summarize.

    Failures of single volumes or bind mounts are logged and recorded in the summary but do not fail the run.
    """

    def __init__(
        self,
        context: ExecutionContext,
        target: Target,
        image: str = "alpine",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Constructor.

        Args:
            context (ExecutionContext): Context of the target, owned by the caller.
            target (Target): Target to back up.
            image (str): Image of the ephemeral archive containers. Defaults to "alpine".
            clock (Callable[[], datetime]): Returns the current (UTC) time. Defaults to utc_now.
        """
        self.context = context
        self.target = target
        self.archiver = VolumeArchiver(context.executor, image=image)
        self.clock = clock

    def run(self) -> BackupSummary:
        """Runs the backup.

        Raises:
            ConfigurationError: If the target has no backup path.
            PreconditionError: If the backup root's parent is missing.
            TransportError: If the SSH session fails.

        Returns:
            BackupSummary: What was backed up and what failed.
        """
        backup_root = self.target.require_backup_path()
        validate_backup_root(self.context, backup_root)

        started = self.clock()
        summary = BackupSummary(
            host=self.target.name,
            backup_dir=str(PurePosixPath(backup_root, timestamp(started))),
            timestamp=timestamp(started),
        )

        logger.info(f"Backing up all Docker volumes on '{self.target.name}' ({self.context.display_address}).")
        self.context.executor.mkdir_recursive(summary.backup_dir)
        logger.info(f"Created backup directory '{summary.backup_dir}'.")

        try:
            with stopped_containers(self.context.executor, summary.restart_outcomes) as running:
                summary.stopped_containers = running
                self._backup_volumes(summary)
                self._backup_bind_mounts(summary)
                self._write_manifest(summary, started)
        finally:
            self._summarize(summary)

        return summary

    def _backup_volumes(self, summary: BackupSummary) -> None:
        try:
            summary.volumes = self.archiver.list_volumes()
        except CommandFailedError as error:
            logger.error(str(error))
            summary.volume_outcomes.append(ArtifactOutcome.failed("volumes", str(error)))
            return

        if not summary.volumes:
            logger.info("No Docker volumes found.")
            return

        logger.info(f"Found {len(summary.volumes)} volume(s) to back up.")
        summary.volume_outcomes.extend(self.archiver.backup_volumes(summary.backup_dir, summary.volumes))

    def _backup_bind_mounts(self, summary: BackupSummary) -> None:
        try:
            summary.bind_mount_outcomes.extend(self.archiver.backup_bind_mounts(summary.backup_dir))
        except CommandFailedError as error:
            logger.error(str(error))
            summary.bind_mount_outcomes.append(ArtifactOutcome.failed("bind mounts", str(error)))

    def _write_manifest(self, summary: BackupSummary, started: datetime) -> None:
        manifest = Manifest(
            host=self.target.name,
            timestamp=summary.timestamp,
            date=human_readable_date(started),
            volumes=summary.volumes,
        )
        manifest_path = str(PurePosixPath(summary.backup_dir, MANIFEST_FILE_NAME))

        try:
            self.context.executor.write_file(manifest_path, manifest.render().encode("utf-8"))
        except (CommandFailedError, PathNotFoundError) as error:
            logger.error(f"Failed to write manifest: {error}")
            return

        summary.manifest_written = True
        logger.info(f"Created backup manifest '{manifest_path}'.")

    def _summarize(self, summary: BackupSummary) -> None:
        try:
            summary.contents = self.context.executor.list_directory(summary.backup_dir)
        except HostBackupError as error:
            logger.warning(f"Unable to list backup directory: {error}")

        logger.info(f"Backup location: {summary.backup_dir}")
        logger.info(f"Backup name: {summary.timestamp}")
        logger.info(f"Volumes found: {summary.volumes_found}, volumes backed up: {summary.volumes_backed_up}")

        for outcome in summary.failed_artifacts:
            logger.warning(f"Failed: '{outcome.item}': {outcome.error}")

        for entry in summary.contents:
            logger.info(f"  {entry}")

        stat_message = f"{summary.volumes_backed_up} volume(s) backed up, {len(summary.failed_artifacts)} error(s)"
        if summary.failed_artifacts:
            logger.warning(stat_message)
        else:
            logger.info(stat_message)


class RestoreOrchestrator:
    """Restores a target's volumes from one backup.

    Steps, strictly in this order:
    1) Validate the backup root.
    2) Resolve the backup directory. Fails, listing the available backups, if it does not exist.
    3) Stop all running containers.
    4) Restore every archive in the backup directory into the volume named after it.
    5) Restart exactly the containers stopped in 3), whatever happened in 4).
    6) Summarize.
    """

    def __init__(self, context: ExecutionContext, target: Target, backup_name: str, image: str = "alpine") -> None:
        self.context = context
        self.target = target
        self.backup_name = backup_name
        self.archiver = VolumeArchiver(context.executor, image=image)

    def run(self) -> RestoreSummary:
        """Runs the restore.

        Raises:
            ConfigurationError: If the target has no backup path.
            PreconditionError: If the backup root's parent or the named backup is missing.
            TransportError: If the SSH session fails.

        Returns:
            RestoreSummary: What was restored and what failed.
        """
        backup_root = self.target.require_backup_path()
        validate_backup_root(self.context, backup_root)
        backup_dir = self._resolve_backup_directory(backup_root)

        summary = RestoreSummary(host=self.target.name, backup_dir=backup_dir)
        logger.info(f"Restoring '{self.target.name}' from backup '{self.backup_name}' ({backup_dir}).")

        try:
            with stopped_containers(self.context.executor, summary.restart_outcomes) as running:
                summary.stopped_containers = running
                summary.restore_outcomes.extend(self.archiver.restore_archives(backup_dir))
        finally:
            self._summarize(summary)

        return summary

    def _resolve_backup_directory(self, backup_root: str) -> str:
        if self.backup_name in ("", ".", "..") or "/" in self.backup_name:
            raise PreconditionError(
                f"Invalid backup name '{self.backup_name}': Must be the name of a directory in '{backup_root}'.",
                path=backup_root,
                available=list_backup_names(self.context, backup_root),
            )

        backup_dir = str(PurePosixPath(backup_root, self.backup_name))

        if self.context.executor.is_directory(backup_dir):
            return backup_dir

        available = list_backup_names(self.context, backup_root)
        listed = ", ".join(available) if available else "(none)"
        raise PreconditionError(
            f"Backup directory does not exist: '{backup_dir}'. Available backups: {listed}",
            path=backup_dir,
            available=available,
        )

    def _summarize(self, summary: RestoreSummary) -> None:
        logger.info(f"Restored from: {summary.backup_dir}")
        logger.info(f"Volumes restored: {len(summary.restored)}")

        for outcome in summary.failed_artifacts:
            logger.warning(f"Failed: '{outcome.item}': {outcome.error}")

        stat_message = f"{len(summary.restored)} volume(s) restored, {len(summary.failed_artifacts)} error(s)"
        if summary.failed_artifacts:
            logger.warning(stat_message)
        else:
            logger.info(stat_message)
