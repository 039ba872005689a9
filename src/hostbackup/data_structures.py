#!/usr/bin/env python3

"""Module that provides data structures needed throughout the project."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class CommandResult:
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


@dataclass
class BindMount:
    container: str  # container name
    source: str  # path on the target host


@dataclass
class ArtifactOutcome:
    """Result of a single best-effort step, e.g. archiving one volume or restarting one container."""

    item: str
    archive: Optional[str] = None  # archive file name, if the step produces or consumes one
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def succeeded(cls, item: str, archive: Optional[str] = None) -> "ArtifactOutcome":
        return cls(item=item, archive=archive)

    @classmethod
    def failed(cls, item: str, reason: str, archive: Optional[str] = None) -> "ArtifactOutcome":
        return cls(item=item, archive=archive, error=reason or "unknown error")


def failures(outcomes: List[ArtifactOutcome]) -> List[ArtifactOutcome]:
    return [outcome for outcome in outcomes if not outcome.ok]


@dataclass
class BackupSummary:
    host: str
    backup_dir: str
    timestamp: str
    stopped_containers: List[str] = field(default_factory=list)
    volumes: List[str] = field(default_factory=list)
    volume_outcomes: List[ArtifactOutcome] = field(default_factory=list)
    bind_mount_outcomes: List[ArtifactOutcome] = field(default_factory=list)
    restart_outcomes: List[ArtifactOutcome] = field(default_factory=list)
    manifest_written: bool = False
    contents: List[str] = field(default_factory=list)

    @property
    def volumes_found(self) -> int:
        return len(self.volumes)

    @property
    def volumes_backed_up(self) -> int:
        return len([outcome for outcome in self.volume_outcomes if outcome.ok])

    @property
    def failed_artifacts(self) -> List[ArtifactOutcome]:
        return failures(self.volume_outcomes) + failures(self.bind_mount_outcomes)


@dataclass
class RestoreSummary:
    host: str
    backup_dir: str
    stopped_containers: List[str] = field(default_factory=list)
    restore_outcomes: List[ArtifactOutcome] = field(default_factory=list)
    restart_outcomes: List[ArtifactOutcome] = field(default_factory=list)

    @property
    def restored(self) -> List[str]:
        return [outcome.item for outcome in self.restore_outcomes if outcome.ok]

    @property
    def failed_artifacts(self) -> List[ArtifactOutcome]:
        return failures(self.restore_outcomes)
