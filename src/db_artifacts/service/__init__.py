"""Ephemeral database service lifecycle.

Usage:
    from db_artifacts.service import ephemeral_service, BootstrapError
"""

from db_artifacts.service.bootstrap import (
    BootstrapError,
    ServiceHandle,
    ServiceNotReadyError,
    ServiceState,
    ephemeral_service,
    prepare_and_start,
    teardown,
)

__all__ = [
    "BootstrapError",
    "ServiceHandle",
    "ServiceNotReadyError",
    "ServiceState",
    "ephemeral_service",
    "prepare_and_start",
    "teardown",
]
