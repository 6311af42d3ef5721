"""Ephemeral database service: restore, start, health-check, tear down.

The export side never reads a backup's files directly.  It restores the
backup into a scratch data directory, starts a throwaway server on top of
it, and talks SQL to that server.  ``ephemeral_service`` owns the whole
lifecycle and guarantees teardown on every exit path.

Usage:
    from db_artifacts.service.bootstrap import ephemeral_service

    async with ephemeral_service(config, engine, runtime, eraser) as handle:
        ...  # handle.state is ServiceState.READY here
    # container stopped, restored data erased
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import SecretStr

from db_artifacts.adapters.base import BackupEngine, DirectoryEraser, ServiceRuntime
from db_artifacts.config.models import ServiceConfig

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class BootstrapError(Exception):
    """Raised when the ephemeral service cannot be brought up."""

    pass


class ServiceNotReadyError(BootstrapError):
    """Raised when the readiness probe never succeeds within its budget."""

    pass


class ServiceState(str, Enum):
    STARTING = "starting"
    READY = "ready"
    STOPPED = "stopped"


@dataclass
class ServiceHandle:
    """Reference to a running ephemeral server and its restored data directory.

    The handle does not own the original backup; it owns only
    ``data_dir``, which teardown erases.
    """

    service_id: str
    data_dir: Path
    root_password: SecretStr = field(repr=False)
    state: ServiceState = ServiceState.STARTING

    @property
    def is_ready(self) -> bool:
        return self.state is ServiceState.READY


async def prepare_and_start(
    handle: ServiceHandle,
    config: ServiceConfig,
    engine: BackupEngine,
    runtime: ServiceRuntime,
    *,
    sleep: Sleep = asyncio.sleep,
) -> ServiceHandle:
    """Restore the backup into ``handle.data_dir`` and start a server on it.

    Args:
        handle: Handle in ``STARTING`` state, created by the caller so it
            can be torn down even when this function fails.
        config: Backup location, image, credentials and probe budget.
        engine: Backup engine performing prepare and copy-back.
        runtime: Service runtime to start and ping.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The same handle, now ``READY``.

    Raises:
        BootstrapError: If the backup directory is missing or any recovery
            or start step fails.
        ServiceNotReadyError: If the server never answers the probe.
    """
    if not config.backup_dir.is_dir():
        raise BootstrapError(f"Backup directory '{config.backup_dir}' does not exist.")

    handle.data_dir.mkdir(parents=True, exist_ok=True)
    password = handle.root_password.get_secret_value()

    logger.info("Preparing backup in %s...", config.backup_dir)
    result = await engine.prepare(config.backup_dir)
    if not result.ok:
        raise BootstrapError(f"mariabackup --prepare failed: {result.stderr_excerpt()}")

    result = await engine.copy_back(config.backup_dir, handle.data_dir)
    if not result.ok:
        raise BootstrapError(f"mariabackup --copy-back failed: {result.stderr_excerpt()}")
    logger.info("Backup prepared and copied to %s.", handle.data_dir)

    logger.info("Starting service container '%s' (%s)...", handle.service_id, config.image)
    result = await runtime.start(handle.data_dir, password)
    if not result.ok:
        raise BootstrapError(f"Could not start service: {result.stderr_excerpt()}")

    logger.info("Waiting for the service to be ready...")
    for attempt in range(1, config.probe_attempts + 1):
        if await runtime.ping(password):
            break
        logger.debug("Readiness probe %d/%d failed", attempt, config.probe_attempts)
        if attempt < config.probe_attempts:
            await sleep(config.probe_interval)
    else:
        raise ServiceNotReadyError(
            f"Service did not become ready after {config.probe_attempts} probes."
        )

    # mysqld answers ping before its init scripts finish
    await sleep(config.settle_delay)
    handle.state = ServiceState.READY
    logger.info("Service is ready.")
    return handle


async def teardown(
    handle: ServiceHandle,
    runtime: ServiceRuntime,
    eraser: DirectoryEraser,
) -> None:
    """Stop the service and erase its restored data. Idempotent, never raises."""
    if handle.state is ServiceState.STOPPED:
        return
    handle.state = ServiceState.STOPPED
    logger.info("Cleaning up...")

    try:
        result = await runtime.stop()
        if not result.ok:
            logger.warning("Could not stop service '%s': %s",
                           handle.service_id, result.stderr_excerpt())
    except Exception as e:
        logger.warning("Could not stop service '%s': %s", handle.service_id, e)

    if not handle.data_dir.exists():
        return
    try:
        result = await eraser.erase_directory(handle.data_dir)
        if not result.ok:
            logger.warning("Could not erase %s: %s",
                           handle.data_dir, result.stderr_excerpt())
            return
        handle.data_dir.rmdir()
    except Exception as e:
        logger.warning("Could not erase %s: %s", handle.data_dir, e)


@asynccontextmanager
async def ephemeral_service(
    config: ServiceConfig,
    engine: BackupEngine,
    runtime: ServiceRuntime,
    eraser: DirectoryEraser,
    *,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[ServiceHandle]:
    """Bring up an ephemeral service and tear it down exactly once.

    Teardown runs whether the body succeeds, raises, or is cancelled, and
    also when bring-up itself fails.

    Raises:
        BootstrapError: If the restored-data directory already holds files
            (they belong to someone else; nothing is touched), or bring-up
            fails.
    """
    data_dir = config.restored_data_dir
    if data_dir.exists() and any(data_dir.iterdir()):
        raise BootstrapError(
            f"Restored data directory '{data_dir}' is not empty; "
            "remove it or choose another location."
        )

    handle = ServiceHandle(
        service_id=runtime.name,
        data_dir=data_dir,
        root_password=config.root_password,
    )
    try:
        await prepare_and_start(handle, config, engine, runtime, sleep=sleep)
        yield handle
    finally:
        await teardown(handle, runtime, eraser)
