#!/usr/bin/env python3

"""Host configuration: targets and connection settings from a .env file, an optional YAML file and the environment.

Host keys in the .env file / environment:

    HOST_<NAME>_IP="192.168.1.10"
    HOST_<NAME>_TAILSCALE_IP="100.64.0.10"     # used as IP when HOST_<NAME>_IP is not set
    HOST_<NAME>_HOSTNAME="maple.tailnet.ts.net"  # SSH alias
    HOST_<NAME>_TAILSCALE="maple"                # SSH alias if HOST_<NAME>_HOSTNAME is not set
    HOST_<NAME>_BACKUP_PATH="/mnt/smb/maple/backups/maple"

The optional YAML hosts file has the form:

    hosts:
      maple:
        ip: 192.168.1.10
        ssh_alias: maple.tailnet.ts.net
        backup_path: /mnt/smb/maple/backups/maple
    settings:
      ssh_user: admin
"""

from pathlib import Path, PurePosixPath
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from hostbackup.errors import ConfigurationError
from hostbackup.logger import logger
from hostbackup.utils import load_yaml_file

LOCAL_ALIAS = "localhost"
ENV_FILE_NAME = ".env"

# order matters: _TAILSCALE_IP must be matched before _IP
HOST_KEY_SUFFIXES = (
    ("_TAILSCALE_IP", "tailscale_ip"),
    ("_IP", "ip"),
    ("_HOSTNAME", "hostname"),
    ("_TAILSCALE", "tailscale"),
    ("_BACKUP_PATH", "backup_path"),
)

SETTINGS_KEYS = {
    "HOSTBACKUP_SSH_USER": "ssh_user",
    "HOSTBACKUP_SSH_PORT": "ssh_port",
    "HOSTBACKUP_SSH_KEY": "ssh_key_file",
    "HOSTBACKUP_CONNECT_TIMEOUT": "connect_timeout",
    "HOSTBACKUP_ARCHIVE_IMAGE": "archive_image",
}


class Target(BaseModel):
    """A logical host backups are created on. Immutable for the duration of an operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    ip: Optional[str] = None
    ssh_alias: Optional[str] = None
    backup_path: Optional[str] = None

    @field_validator("backup_path")
    @classmethod
    def backup_path_is_absolute(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value and not PurePosixPath(value).is_absolute():
            name = info.data.get("name", "")
            raise ConfigurationError(
                f"Backup path '{value}' of host '{name}' must be an absolute path.\n\n"
                f"Fix configuration in .env:\n"
                f'  {host_key(name, "_BACKUP_PATH")}="/path/to/backups/{name}"'
            )
        return value

    @property
    def connection_host(self) -> Optional[str]:
        return self.ip or self.ssh_alias

    def require_backup_path(self) -> str:
        """Returns the configured backup root.

        Raises:
            ConfigurationError: If no backup path is configured, naming the key to add.

        Returns:
            str: Backup root on the target.
        """
        if not self.backup_path:
            raise ConfigurationError(
                f"No backup path configured for host '{self.name}'.\n\n"
                f"Add configuration to .env:\n"
                f'  {host_key(self.name, "_BACKUP_PATH")}="/path/to/backups/{self.name}"'
            )
        return self.backup_path


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ssh_user: Optional[str] = None
    ssh_port: int = 22
    ssh_key_file: Optional[str] = None
    connect_timeout: float = 10.0
    archive_image: str = "alpine"


class HostConfig(BaseModel):
    targets: Dict[str, Target] = {}
    settings: Settings = Settings()


def host_key(name: str, suffix: str) -> str:
    return f"HOST_{name.upper()}{suffix}"


def find_env_file(start: Path, environ: Mapping[str, str]) -> Optional[Path]:
    """Locates the .env file.

    Lookup order: HOMELAB_ENV_FILE, HOMELAB_DIR/.env, then the first .env found walking up from 'start'.

    Args:
        start (Path): Directory to start the upward search from, usually the working directory.
        environ (Mapping[str, str]): Process environment.

    Returns:
        Optional[Path]: Path to the .env file, or None if none was found.
    """
    if environ.get("HOMELAB_ENV_FILE"):
        return Path(environ["HOMELAB_ENV_FILE"])

    if environ.get("HOMELAB_DIR"):
        return Path(environ["HOMELAB_DIR"]).joinpath(ENV_FILE_NAME)

    for directory in [start, *start.parents]:
        candidate = directory.joinpath(ENV_FILE_NAME)
        if candidate.is_file():
            return candidate

    return None


def parse_host_keys(values: Mapping[str, Optional[str]]) -> Dict[str, Dict[str, str]]:
    """Collects the HOST_<NAME>_<FIELD> keys into one field dictionary per lower-cased host name."""
    hosts: Dict[str, Dict[str, str]] = {}

    for key, value in values.items():
        if not key.startswith("HOST_") or not value:
            continue

        rest = key[len("HOST_") :]
        for suffix, field_name in HOST_KEY_SUFFIXES:
            if rest.endswith(suffix) and len(rest) > len(suffix):
                name = rest[: -len(suffix)].lower()
                hosts.setdefault(name, {})[field_name] = value
                break

    return hosts


def _target_from_fields(name: str, fields: Mapping[str, str], base: Optional[Target] = None) -> Target:
    ip = fields.get("ip") or fields.get("tailscale_ip") or (base.ip if base else None)
    ssh_alias = fields.get("hostname") or fields.get("tailscale") or (base.ssh_alias if base else None)
    backup_path = fields.get("backup_path") or (base.backup_path if base else None)

    return Target(name=name, ip=ip, ssh_alias=ssh_alias, backup_path=backup_path)


def _load_hosts_file(path: Path) -> HostConfig:
    try:
        content = load_yaml_file(path)
    except (FileNotFoundError, RuntimeError) as error:
        raise ConfigurationError(f"Failed to load hosts file: {error}") from error

    hosts = content.get("hosts") or {}
    if not isinstance(hosts, dict):
        raise ConfigurationError(f"Hosts file '{path}': 'hosts' must be a mapping of host names.")

    try:
        targets = {
            str(name).lower(): Target(name=str(name).lower(), **(attributes or {})) for name, attributes in hosts.items()
        }
        settings = Settings(**(content.get("settings") or {}))
    except (TypeError, ValidationError) as error:
        raise ConfigurationError(f"Hosts file '{path}' is invalid: {error}") from error

    return HostConfig(targets=targets, settings=settings)


def _settings_from_values(values: Mapping[str, Optional[str]], base: Settings) -> Settings:
    fields = base.model_dump()

    for key, field_name in SETTINGS_KEYS.items():
        if values.get(key):
            fields[field_name] = values[key]

    if not fields.get("ssh_user"):
        fields["ssh_user"] = values.get("USER") or values.get("USERNAME") or "root"

    try:
        return Settings(**fields)
    except ValidationError as error:
        raise ConfigurationError(f"Invalid hostbackup settings: {error}") from error


def load_config(
    environ: Mapping[str, str],
    env_file: Optional[Path] = None,
    hosts_file: Optional[Path] = None,
) -> HostConfig:
    """Loads targets and settings.

    Values from the process environment take precedence over values from the .env file, which in turn take
    precedence over the YAML hosts file.

    Args:
        environ (Mapping[str, str]): Process environment, passed explicitly.
        env_file (Optional[Path]): .env file to read. Defaults to None, meaning no .env file is read.
        hosts_file (Optional[Path]): YAML hosts file to read. Defaults to None.

    Raises:
        ConfigurationError: If a given file does not exist or cannot be parsed, or a value is invalid.

    Returns:
        HostConfig: Loaded configuration.
    """
    config = _load_hosts_file(hosts_file) if hosts_file is not None else HostConfig()

    values: Dict[str, Optional[str]] = {}
    if env_file is not None:
        if not env_file.is_file():
            raise ConfigurationError(
                f".env file not found at '{env_file}'.\nCopy .env.example to .env and configure your hosts."
            )
        values.update(dotenv_values(env_file))
        logger.debug(f"Loaded configuration from '{env_file}'.")
    values.update(environ)

    targets = dict(config.targets)
    for name, fields in parse_host_keys(values).items():
        targets[name] = _target_from_fields(name, fields, base=targets.get(name))

    return HostConfig(targets=targets, settings=_settings_from_values(values, config.settings))


def find_host_name(hostname: str, config: HostConfig) -> Optional[str]:
    """Finds the configured name for a host: exact match, lower-case match, then the first DNS label."""
    for candidate in (hostname, hostname.lower(), hostname.lower().split(".")[0]):
        if candidate in config.targets:
            return candidate
    return None


def get_target(config: HostConfig, hostname: str) -> Target:
    """Returns the target configured for a host name.

    Args:
        config (HostConfig): Loaded configuration.
        hostname (str): Host name as given by the user.

    Raises:
        ConfigurationError: If the host is not configured, with the keys to add.

    Returns:
        Target: Configured target.
    """
    name = find_host_name(hostname, config)

    if name is None:
        known = ", ".join(sorted(config.targets)) or "(none)"
        raise ConfigurationError(
            f"Host '{hostname}' not found in configuration. Known hosts: {known}.\n\n"
            f"Add configuration to .env:\n"
            f'  {host_key(hostname, "_IP")}="<ip-address>"\n'
            f'  {host_key(hostname, "_TAILSCALE")}="<tailscale-hostname>"\n'
            f'  {host_key(hostname, "_BACKUP_PATH")}="<backup-path>"'
        )

    return config.targets[name]
