"""Ordered, size-adaptive import of artifact directories.

Usage:
    from db_artifacts.importer import import_artifact_set, run_import
"""

from db_artifacts.importer.pipeline import (
    OPTIMIZED_POSTAMBLE,
    OPTIMIZED_PREAMBLE,
    ContinueDecision,
    StatusTicker,
    always_continue,
    always_halt,
    check_connection,
    import_artifact_set,
    optimized_statement_stream,
    read_chunks,
    run_import,
    verify_import,
)

__all__ = [
    "OPTIMIZED_POSTAMBLE",
    "OPTIMIZED_PREAMBLE",
    "ContinueDecision",
    "StatusTicker",
    "always_continue",
    "always_halt",
    "check_connection",
    "import_artifact_set",
    "optimized_statement_stream",
    "read_chunks",
    "run_import",
    "verify_import",
]
