#!/usr/bin/env python3

"""Main hostbackup module, containing the main CLI entry point."""

import os
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import List, Optional, Tuple

from hostbackup.config import find_env_file, load_config
from hostbackup.errors import HostBackupError
from hostbackup.hostbackup import HostBackup
from hostbackup.logger import logger

COMMANDS = ["create", "list", "restore"]


def parse_args(argv: Optional[List[str]] = None) -> Tuple[str, str, Optional[str], Optional[Path], Optional[Path]]:
    """Parses CLI parameters.

    Args:
        argv (Optional[List[str]]): Arguments, defaults to None meaning sys.argv.

    Returns:
        Tuple[str, str, Optional[str], Optional[Path], Optional[Path]]: Host name, command, backup name, .env file
            path, hosts file path.
    """
    parser = ArgumentParser(prog="hostbackup", description="Backup and restore Docker volumes of a homelab host.")

    parser.add_argument("host", help="Configured host name, or 'localhost'.")
    parser.add_argument("command", choices=COMMANDS, help="Operation to run on the host.")
    parser.add_argument("-b", "--backup", help="Backup name to restore, e.g. 20240131_174502.")
    parser.add_argument("-e", "--env-file", help="Path to the .env file. Searched for if not given.")
    parser.add_argument("--hosts-file", help="Path to an optional YAML hosts file.")

    args = parser.parse_args(argv)

    env_file = Path(args.env_file) if args.env_file else None
    hosts_file = Path(args.hosts_file) if args.hosts_file else None

    return args.host, args.command, args.backup, env_file, hosts_file


def run(
    host: str,
    command: str,
    backup_name: Optional[str] = None,
    env_file: Optional[Path] = None,
    hosts_file: Optional[Path] = None,
) -> None:
    environ = dict(os.environ)

    if env_file is None:
        env_file = find_env_file(Path.cwd(), environ)

    config = load_config(environ, env_file=env_file, hosts_file=hosts_file)
    host_backup = HostBackup(config)

    if command == "create":
        host_backup.backup_host(host)
    elif command == "list":
        host_backup.list_host_backups(host)
    else:
        host_backup.restore_host(host, backup_name)


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    host, command, backup_name, env_file, hosts_file = parse_args(argv)

    try:
        run(host, command, backup_name=backup_name, env_file=env_file, hosts_file=hosts_file)
    except HostBackupError as error:
        logger.error(f"Exited with an error: {error}")
        sys.exit(1)
    logger.info("Exited with success.")
    sys.exit(0)


if __name__ == "__main__":
    main()
