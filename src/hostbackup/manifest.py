#!/usr/bin/env python3

"""The plain-text manifest 'backup-info.txt' written into every backup directory.

The manifest is informational only: restores are driven by the archives found in the backup directory, never by the
manifest content.
"""

from dataclasses import dataclass, field
from typing import List, Optional

MANIFEST_FILE_NAME = "backup-info.txt"


@dataclass
class Manifest:
    host: str
    timestamp: str
    date: str
    volumes: List[str] = field(default_factory=list)
    volume_count: Optional[int] = None  # as read from a file; None means len(volumes)

    @property
    def count(self) -> int:
        return self.volume_count if self.volume_count is not None else len(self.volumes)

    def render(self) -> str:
        """Renders the manifest, e.g.

            Host: maple
            Timestamp: 20240131_174502
            Date: 2024-01-31 17:45:02 UTC
            Volume Count: 2
            Volumes:
              - portainer_data
              - npm_data
        """
        lines = [
            f"Host: {self.host}",
            f"Timestamp: {self.timestamp}",
            f"Date: {self.date}",
            f"Volume Count: {self.count}",
            "Volumes:",
        ]
        lines.extend(f"  - {volume}" for volume in self.volumes)
        return "\n".join(lines) + "\n"


def parse_manifest(text: str) -> Manifest:
    """Parses a rendered manifest. Unknown lines are ignored and missing fields stay empty.

    Args:
        text (str): Manifest file content.

    Returns:
        Manifest: Parsed manifest.
    """
    manifest = Manifest(host="", timestamp="", date="")
    in_volumes = False

    for line in text.splitlines():
        if in_volumes and line.strip().startswith("- "):
            manifest.volumes.append(line.strip()[2:].strip())
            continue

        key, _, value = line.partition(":")
        key, value = key.strip(), value.strip()
        in_volumes = key == "Volumes"

        if key == "Host":
            manifest.host = value
        elif key == "Timestamp":
            manifest.timestamp = value
        elif key == "Date":
            manifest.date = value
        elif key == "Volume Count" and value.isdigit():
            manifest.volume_count = int(value)

    return manifest
