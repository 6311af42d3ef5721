"""Artifact stages, sets, ledgers and formatting helpers.

Usage:
    from db_artifacts.artifacts import Stage, ArtifactSet, ImportLedger
    from db_artifacts.artifacts import format_size, format_elapsed
"""

from db_artifacts.artifacts.formatting import format_elapsed, format_size
from db_artifacts.artifacts.models import (
    EMPTY_THRESHOLD_BYTES,
    EXCLUDED_DATABASES,
    OPTIMIZE_THRESHOLD_BYTES,
    STATUS_INTERVAL_SECONDS,
    ArtifactFile,
    ArtifactSet,
    DatabaseSelection,
    ImportLedger,
    ImportOutcome,
    Stage,
    StageResult,
    VerificationSnapshot,
    scan_artifact_set,
)

__all__ = [
    "EMPTY_THRESHOLD_BYTES",
    "EXCLUDED_DATABASES",
    "OPTIMIZE_THRESHOLD_BYTES",
    "STATUS_INTERVAL_SECONDS",
    "ArtifactFile",
    "ArtifactSet",
    "DatabaseSelection",
    "ImportLedger",
    "ImportOutcome",
    "Stage",
    "StageResult",
    "VerificationSnapshot",
    "format_elapsed",
    "format_size",
    "scan_artifact_set",
]
