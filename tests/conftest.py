#!/usr/bin/env python3

"""Testing fixtures."""

from datetime import datetime, timezone
from typing import Callable, Generator

import pytest
from docker import DockerClient, from_env
from docker.errors import DockerException

from hostbackup.config import Target
from hostbackup.context import ExecutionContext
from tests.utils.fakes import BACKUP_ROOT, FakeDockerHost

FIXED_TIME = datetime(2024, 1, 31, 17, 45, 2, tzinfo=timezone.utc)


def _docker_available() -> bool:
    try:
        from_env().ping()
    except (DockerException, OSError):
        return False
    return True


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    if not any(item.get_closest_marker("docker") for item in items):
        return
    if _docker_available():
        return

    skip_docker = pytest.mark.skip(reason="No Docker daemon reachable.")
    for item in items:
        if item.get_closest_marker("docker"):
            item.add_marker(skip_docker)


@pytest.fixture
def fake_host() -> FakeDockerHost:
    """Returns a fake Docker host whose backup share '/mnt/backups' is mounted.

    Returns:
        FakeDockerHost: Fake host without containers or volumes.
    """
    return FakeDockerHost(dirs=["/mnt/backups"])


@pytest.fixture
def target() -> Target:
    return Target(name="maple", ip="192.168.1.10", backup_path=BACKUP_ROOT)


@pytest.fixture
def context(fake_host: FakeDockerHost) -> ExecutionContext:
    return ExecutionContext(executor=fake_host, is_local=True, display_address="192.168.1.10")


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_TIME


@pytest.fixture(scope="session")
def docker_client() -> Generator[DockerClient, None, None]:
    """Returns the host's docker client.

    Yields:
        DockerClient: Docker client instance.
    """
    client = from_env()
    yield client
    client.close()
