#!/usr/bin/env python3

"""Stopping and restarting the containers of a target."""

from contextlib import contextmanager
from typing import Generator, List

from hostbackup.abstract.executor import ExecutionCapability
from hostbackup.data_structures import ArtifactOutcome
from hostbackup.docker import commands
from hostbackup.errors import CommandFailedError
from hostbackup.logger import logger
from hostbackup.utils import split_lines


def list_running_containers(executor: ExecutionCapability) -> List[str]:
    """Lists the IDs of all running containers.

    Args:
        executor (ExecutionCapability): Executor of the target.

    Raises:
        CommandFailedError: If the container engine cannot be queried.

    Returns:
        List[str]: Container IDs in the order reported by the engine.
    """
    result = executor.run_shell_command(commands.list_running_containers())

    if not result.ok:
        raise CommandFailedError(f"Failed to list running containers: '{result.stderr.strip()}'.")

    return split_lines(result.stdout)


def stop_all(executor: ExecutionCapability) -> List[str]:
    """Stops all running containers.

    Containers which fail to stop are logged and stay in the returned set, so that they are included when the set is
    started again.

    Args:
        executor (ExecutionCapability): Executor of the target.

    Returns:
        List[str]: IDs of the containers which were running before the call. Empty if nothing was running.
    """
    running = list_running_containers(executor)

    if not running:
        logger.info("No running containers to stop.")
        return running

    logger.info(f"Stopping {len(running)} running container(s)...")

    for container in running:
        result = executor.run_shell_command(commands.stop_container(container))
        if not result.ok:
            logger.error(f"Failed to stop container '{container}': '{result.stderr.strip()}'.")

    return running


def start_all(executor: ExecutionCapability, containers: List[str]) -> List[ArtifactOutcome]:
    """Starts exactly the given containers, in the given order.

    A container that fails to start does not prevent the remaining ones from being started.

    Args:
        executor (ExecutionCapability): Executor of the target.
        containers (List[str]): Container IDs as returned by stop_all().

    Returns:
        List[ArtifactOutcome]: One outcome per container.
    """
    if not containers:
        logger.info("No containers to start.")
        return []

    logger.info(f"Starting {len(containers)} container(s)...")

    outcomes: List[ArtifactOutcome] = []
    for container in containers:
        result = executor.run_shell_command(commands.start_container(container))
        if result.ok:
            outcomes.append(ArtifactOutcome.succeeded(container))
        else:
            logger.error(f"Failed to start container '{container}': '{result.stderr.strip()}'.")
            outcomes.append(ArtifactOutcome.failed(container, result.stderr.strip()))

    return outcomes


@contextmanager
def stopped_containers(
    executor: ExecutionCapability, restart_outcomes: List[ArtifactOutcome]
) -> Generator[List[str], None, None]:
    """Stops all running containers for the duration of the context and starts them again afterwards.

    The containers are started again no matter how the context is left.

    Args:
        executor (ExecutionCapability): Executor of the target.
        restart_outcomes (List[ArtifactOutcome]): Receives the outcomes of the restart.

    Yields:
        Generator[List[str], None, None]: IDs of the stopped containers.
    """
    running = stop_all(executor)
    try:
        yield running
    finally:
        restart_outcomes.extend(start_all(executor, running))
