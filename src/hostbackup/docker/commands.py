#!/usr/bin/env python3

"""Command templates for the docker CLI.

All container engine interaction goes through these strings and the executor's run_shell_command(), so the same
commands run locally and over SSH. Every interpolated value is shell-quoted.
"""

from pathlib import PurePosixPath
from shlex import quote

DATA_MOUNT = PurePosixPath("/data")  # volume or bind mount inside the archive container
BACKUP_MOUNT = PurePosixPath("/backup")  # backup directory inside the archive container

NAMES_FORMAT = "{{.Names}}"
VOLUME_NAME_FORMAT = "{{.Name}}"
BIND_MOUNT_FORMAT = '{{range .Mounts}}{{if eq .Type "bind"}}{{println .Source}}{{end}}{{end}}'


def sudo(command: str) -> str:
    return f"sudo {command}"


def list_running_containers() -> str:
    return "docker ps -q"


def list_containers() -> str:
    return f"docker ps -a --format {quote(NAMES_FORMAT)}"


def stop_container(container: str) -> str:
    return f"docker stop {quote(container)}"


def start_container(container: str) -> str:
    return f"docker start {quote(container)}"


def list_volumes() -> str:
    return f"docker volume ls --format {quote(VOLUME_NAME_FORMAT)}"


def inspect_volume(volume: str) -> str:
    return f"docker volume inspect {quote(volume)}"


def create_volume(volume: str) -> str:
    return f"docker volume create {quote(volume)}"


def inspect_bind_mounts(container: str) -> str:
    return f"docker inspect --format {quote(BIND_MOUNT_FORMAT)} {quote(container)}"


def archive(source: str, backup_dir: str, archive_file: str, image: str) -> str:
    """Creates the command that tar-compresses a volume or host directory into the backup directory.

    An ephemeral container mounts the source read-only under /data and the backup directory under /backup.

    Args:
        source (str): Volume name or absolute host path.
        backup_dir (str): Backup directory on the target host.
        archive_file (str): Name of the archive to create inside the backup directory.
        image (str): Image of the ephemeral container, needs 'tar'.

    Returns:
        str: Shell command.
    """
    return (
        f"docker run --rm"
        f" -v {quote(f'{source}:{DATA_MOUNT}:ro')}"
        f" -v {quote(f'{backup_dir}:{BACKUP_MOUNT}')}"
        f" {quote(image)}"
        f" tar czf {quote(str(BACKUP_MOUNT.joinpath(archive_file)))} -C {DATA_MOUNT} ."
    )


def restore(volume: str, backup_dir: str, archive_file: str, image: str) -> str:
    """Creates the command that replaces a volume's content with the content of an archive.

    Args:
        volume (str): Volume to restore into.
        backup_dir (str): Backup directory on the target host, mounted read-only.
        archive_file (str): Archive inside the backup directory.
        image (str): Image of the ephemeral container, needs 'sh', 'find' and 'tar'.

    Returns:
        str: Shell command.
    """
    extract = (
        f"find {DATA_MOUNT} -mindepth 1 -delete"
        f" && tar xzf {quote(str(BACKUP_MOUNT.joinpath(archive_file)))} -C {DATA_MOUNT}"
    )
    return (
        f"docker run --rm"
        f" -v {quote(f'{volume}:{DATA_MOUNT}')}"
        f" -v {quote(f'{backup_dir}:{BACKUP_MOUNT}:ro')}"
        f" {quote(image)}"
        f" sh -c {quote(extract)}"
    )
