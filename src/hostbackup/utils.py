#!/usr/bin/env python3

"""hostbackup utility functions."""

from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Dict, List, Union

from yaml import SafeLoader, YAMLError, load

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S UTC"
ARCHIVE_SUFFIX = ".tar.gz"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp(moment: datetime) -> str:
    """Formats a point in time as a backup directory name, e.g. '20240131_174502'.

    Args:
        moment (datetime): Point in time, expected to be timezone aware (UTC).

    Returns:
        str: Timestamp string.
    """
    return moment.strftime(TIMESTAMP_FORMAT)


def human_readable_date(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(DATE_FORMAT)


def load_yaml_file(path: Path) -> Dict:
    """Loads a YAML file and returns it as a dictionary.

    Args:
        path (Path): Path to the YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        RuntimeError: If the file content cannot be parsed or is not a mapping.

    Returns:
        Dict: Content of the file. Empty files yield an empty dictionary.
    """
    if not path.exists():
        raise FileNotFoundError(f"Unable to load YAML file '{path}': File does not exist.")

    with open(path.absolute(), "r") as file:
        try:
            content = load(file, Loader=SafeLoader)
        except YAMLError as error:
            raise RuntimeError(f"Unable to parse YAML file '{path}': {error}") from error

    if content is None:
        return {}

    if not isinstance(content, dict):
        raise RuntimeError(f"YAML file '{path}' must contain a mapping, got '{type(content).__name__}'.")

    return content


def last_path_component(path: Union[str, PurePosixPath]) -> str:
    """Returns the last non-empty component of a path, e.g. 'conf' for '/srv/nginx/conf/'."""
    components = [component for component in str(path).split("/") if component]
    return components[-1] if components else ""


def archive_name(name: str) -> str:
    return f"{name}{ARCHIVE_SUFFIX}"


def strip_archive_suffix(file_name: str) -> str:
    """Returns the logical volume name of an archive file, or an empty string if it is no archive."""
    if not file_name.endswith(ARCHIVE_SUFFIX):
        return ""
    return file_name[: -len(ARCHIVE_SUFFIX)]


def split_lines(output: str) -> List[str]:
    """Splits command output into its non-empty, stripped lines."""
    return [line.strip() for line in output.splitlines() if line.strip()]
