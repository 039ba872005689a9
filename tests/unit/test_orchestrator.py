"""Unit tests for module hostbackup.orchestrator."""

from datetime import datetime
from typing import Callable

import pytest

from hostbackup.config import Target
from hostbackup.context import ExecutionContext
from hostbackup.errors import ConfigurationError, PreconditionError, TransportError
from hostbackup.manifest import parse_manifest
from hostbackup.orchestrator import BackupOrchestrator, RestoreOrchestrator, list_backups
from tests.utils.fakes import BACKUP_ROOT, FakeDockerHost

BACKUP_DIR = f"{BACKUP_ROOT}/20240131_174502"


def populate(host: FakeDockerHost) -> None:
    host.add_container("portainer")
    host.add_container("nginx", mounts=["/srv/nginx/conf"])
    host.add_container("old_job", running=False)
    host.mkdir_recursive("/srv/nginx/conf")
    host.add_volume("portainer_data")
    host.add_volume("npm_data")


def test_backup_creates_timestamped_directory_with_archives_and_manifest(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    populate(fake_host)

    summary = BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert summary.backup_dir == BACKUP_DIR
    assert summary.timestamp == "20240131_174502"
    assert summary.stopped_containers == ["portainer", "nginx"]
    assert summary.volumes_found == 2
    assert summary.volumes_backed_up == 2
    assert summary.failed_artifacts == []
    assert summary.manifest_written
    assert summary.contents == ["backup-info.txt", "nginx_conf.tar.gz", "npm_data.tar.gz", "portainer_data.tar.gz"]

    manifest = parse_manifest(fake_host.files[f"{BACKUP_DIR}/backup-info.txt"].decode())
    assert manifest.host == "maple"
    assert manifest.date == "2024-01-31 17:45:02 UTC"
    assert manifest.volumes == ["portainer_data", "npm_data"]

    assert fake_host.running == ["portainer", "nginx"]


def test_backup_archives_only_while_containers_are_stopped(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    populate(fake_host)

    BackupOrchestrator(context, target, clock=fixed_clock).run()

    commands = fake_host.commands
    last_stop = max(index for index, command in enumerate(commands) if command.startswith("docker stop"))
    first_start = min(index for index, command in enumerate(commands) if command.startswith("docker start"))
    archives = [index for index, command in enumerate(commands) if command.startswith("docker run")]

    assert archives
    assert all(last_stop < index < first_start for index in archives)


def test_backup_of_empty_host_writes_manifest_with_zero_volumes(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    summary = BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert fake_host.is_directory(BACKUP_DIR)
    assert "Volume Count: 0\n" in fake_host.files[f"{BACKUP_DIR}/backup-info.txt"].decode()
    assert summary.volumes_found == 0
    assert summary.stopped_containers == []
    assert summary.contents == ["backup-info.txt"]


def test_backup_with_one_failing_volume_still_restarts_containers(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    fake_host.add_container("portainer")
    for volume in ("a", "b", "c"):
        fake_host.add_volume(volume)
    fake_host.failing_volumes.add("b")

    summary = BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert summary.volumes_backed_up == 2
    assert [outcome.item for outcome in summary.failed_artifacts] == ["b"]
    assert fake_host.running == ["portainer"]
    assert summary.manifest_written


def test_backup_records_failed_volume_listing(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    fake_host.add_container("portainer")
    fake_host.failing_commands["docker volume ls"] = "daemon error"

    summary = BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert [outcome.item for outcome in summary.failed_artifacts] == ["volumes"]
    assert fake_host.running == ["portainer"]


def test_backup_records_failed_manifest_write(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    fake_host.add_volume("a")
    fake_host.failing_writes.add(f"{BACKUP_DIR}/backup-info.txt")

    summary = BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert not summary.manifest_written
    assert summary.volumes_backed_up == 1


def test_backup_records_failed_container_listing(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    fake_host.add_container("portainer")
    fake_host.add_container("nginx")
    fake_host.failing_commands["docker ps -a"] = "daemon gone"

    summary = BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert [outcome.item for outcome in summary.failed_artifacts] == ["bind mounts"]
    assert fake_host.running == ["portainer", "nginx"]


def test_backup_restarts_containers_when_the_session_fails(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    fake_host.add_container("portainer")
    fake_host.raising_commands["docker volume ls"] = TransportError("Session closed")

    with pytest.raises(TransportError):
        BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert fake_host.running == ["portainer"]


def test_backup_creates_missing_backup_root(
    context: ExecutionContext, fake_host: FakeDockerHost, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    assert not fake_host.is_directory(BACKUP_ROOT)

    BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert fake_host.is_directory(BACKUP_ROOT)


def test_backup_fails_before_touching_containers_when_share_is_not_mounted(
    target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    host = FakeDockerHost()
    host.add_container("portainer")
    context = ExecutionContext(executor=host, is_local=True, display_address="192.168.1.10")

    with pytest.raises(PreconditionError) as error:
        BackupOrchestrator(context, target, clock=fixed_clock).run()

    assert error.value.path == "/mnt/backups"
    assert host.commands == []
    assert host.running == ["portainer"]


def test_backup_requires_backup_path(context: ExecutionContext, fake_host: FakeDockerHost) -> None:
    with pytest.raises(ConfigurationError):
        BackupOrchestrator(context, Target(name="maple")).run()

    assert fake_host.commands == []


def test_restore_restores_archives_and_skips_other_files(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target
) -> None:
    fake_host.add_container("app")
    fake_host.mkdir_recursive(BACKUP_DIR)
    fake_host.files[f"{BACKUP_DIR}/notes.txt"] = b"hello"
    fake_host.files[f"{BACKUP_DIR}/cache.tar.gz"] = b"cached"

    summary = RestoreOrchestrator(context, target, "20240131_174502").run()

    assert summary.restored == ["cache"]
    assert summary.failed_artifacts == []
    assert summary.stopped_containers == ["app"]
    assert fake_host.restored == ["cache"]
    assert fake_host.running == ["app"]


def test_restore_with_failure_still_restarts_containers(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target
) -> None:
    fake_host.add_container("app")
    fake_host.mkdir_recursive(BACKUP_DIR)
    fake_host.files[f"{BACKUP_DIR}/a.tar.gz"] = b"a"
    fake_host.files[f"{BACKUP_DIR}/b.tar.gz"] = b"b"
    fake_host.failing_restores.add("a")

    summary = RestoreOrchestrator(context, target, "20240131_174502").run()

    assert summary.restored == ["b"]
    assert [outcome.item for outcome in summary.failed_artifacts] == ["a"]
    assert fake_host.running == ["app"]


def test_restore_of_unknown_backup_lists_available_backups(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target
) -> None:
    fake_host.add_container("app")
    fake_host.mkdir_recursive(f"{BACKUP_ROOT}/20240101_000000")
    fake_host.mkdir_recursive(f"{BACKUP_ROOT}/20240131_174502")
    fake_host.files[f"{BACKUP_ROOT}/stray.txt"] = b""

    with pytest.raises(PreconditionError) as error:
        RestoreOrchestrator(context, target, "20230101_000000").run()

    assert error.value.path == f"{BACKUP_ROOT}/20230101_000000"
    assert error.value.available == ["20240131_174502", "20240101_000000"]
    assert "20240131_174502" in str(error.value)
    assert fake_host.docker_commands("stop") == []


@pytest.mark.parametrize("backup_name", ["/etc", "../maple", "20240131_174502/..", "..", ".", ""])
def test_restore_rejects_backup_names_outside_the_backup_root(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, backup_name: str
) -> None:
    fake_host.add_container("app")
    fake_host.mkdir_recursive("/etc")
    fake_host.mkdir_recursive(BACKUP_DIR)

    with pytest.raises(PreconditionError) as error:
        RestoreOrchestrator(context, target, backup_name).run()

    assert error.value.available == ["20240131_174502"]
    assert fake_host.docker_commands("") == []
    assert fake_host.running == ["app"]


def test_list_backups_newest_first_with_manifests(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target, fixed_clock: Callable[[], datetime]
) -> None:
    fake_host.add_volume("portainer_data")
    BackupOrchestrator(context, target, clock=fixed_clock).run()
    fake_host.mkdir_recursive(f"{BACKUP_ROOT}/20230101_000000")
    fake_host.files[f"{BACKUP_ROOT}/notes.txt"] = b""
    fake_host.commands.clear()

    backups = list_backups(context, target)

    assert [backup.name for backup in backups] == ["20240131_174502", "20230101_000000"]
    assert backups[0].manifest.count == 1
    assert backups[1].manifest is None
    assert fake_host.docker_commands("") == []


def test_list_backups_fails_when_root_is_missing(
    fake_host: FakeDockerHost, context: ExecutionContext, target: Target
) -> None:
    fake_host.add_container("app")

    with pytest.raises(PreconditionError) as error:
        list_backups(context, target)

    assert error.value.path == BACKUP_ROOT
    assert BACKUP_ROOT in str(error.value)
    assert fake_host.commands == []
