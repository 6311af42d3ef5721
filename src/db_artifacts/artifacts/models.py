"""Artifact models: stages, per-database artifact sets and import ledgers.

An export run writes one SQL file per ``Stage`` under
``<output_dir>/<database>/``.  An import run reads such a directory back and
records one ``StageResult`` per stage in an ``ImportLedger``.

Usage:
    from db_artifacts.artifacts.models import Stage, scan_artifact_set

    artifact_set = scan_artifact_set("output/shop", "shop")
    for stage in Stage.import_order():
        artifact = artifact_set.get(stage)
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from db_artifacts.artifacts.formatting import MIB

# Files at or below this size hold only dump boilerplate or a placeholder.
EMPTY_THRESHOLD_BYTES = 200

# Files above this size are applied with the optimized statement stream.
OPTIMIZE_THRESHOLD_BYTES = 10 * MIB

STATUS_INTERVAL_SECONDS = 30.0

EXCLUDED_DATABASES = frozenset(
    {"information_schema", "performance_schema", "mysql", "sys"}
)


# ============================================================================
# Stages and outcomes
# ============================================================================


class Stage(str, Enum):
    """One category of SQL artifact, declared in canonical order."""

    SCHEMA = "schema"
    DATA = "data"
    VIEWS = "views"
    ROUTINES = "routines"
    TRIGGERS = "triggers"
    EVENTS = "events"
    GRANTS = "grants"
    FULL = "full"

    @property
    def filename(self) -> str:
        return f"{self.value}.sql"

    @property
    def position(self) -> int:
        return list(Stage).index(self)

    @classmethod
    def import_order(cls) -> list["Stage"]:
        """Stages applied by an import, dependencies first. Excludes FULL."""
        return [stage for stage in cls if stage is not cls.FULL]


class ImportOutcome(str, Enum):
    """Result of one stage within an import run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED_ABSENT = "skipped_absent"
    SKIPPED_EMPTY = "skipped_empty"


# ============================================================================
# Artifact files and sets
# ============================================================================


class ArtifactFile(BaseModel):
    """A single stage's SQL file for one database."""

    stage: Stage
    path: Path
    size_bytes: int

    @property
    def is_empty(self) -> bool:
        """True when the file carries no statements worth applying."""
        return self.size_bytes <= EMPTY_THRESHOLD_BYTES

    @classmethod
    def from_path(cls, stage: Stage, path: Path) -> "ArtifactFile":
        return cls(stage=stage, path=path, size_bytes=path.stat().st_size)


class ArtifactSet(BaseModel):
    """All stage files produced for one database by one export run.

    ``files`` holds at most one entry per stage, in canonical stage order.
    ``stage_errors`` lists stages whose extraction failed; the remaining
    stages are still usable.
    """

    database: str
    directory: Path
    files: list[ArtifactFile] = Field(default_factory=list)
    stage_errors: dict[Stage, str] = Field(default_factory=dict)

    def get(self, stage: Stage) -> ArtifactFile | None:
        for artifact in self.files:
            if artifact.stage is stage:
                return artifact
        return None

    def add(self, artifact: ArtifactFile) -> None:
        """Add or replace the file for ``artifact.stage``, keeping stage order."""
        files = [f for f in self.files if f.stage is not artifact.stage]
        files.append(artifact)
        files.sort(key=lambda f: f.stage.position)
        self.files = files

    @property
    def total_bytes(self) -> int:
        """Bytes an import would read (FULL excluded)."""
        import_stages = set(Stage.import_order())
        return sum(f.size_bytes for f in self.files if f.stage in import_stages)

    @property
    def has_errors(self) -> bool:
        return bool(self.stage_errors)


def scan_artifact_set(directory: str | Path, database: str) -> ArtifactSet:
    """Build an ArtifactSet from the stage files present in ``directory``.

    Stage order comes from ``Stage``, never from the directory listing.
    Unknown files are ignored.
    """
    directory = Path(directory)
    artifact_set = ArtifactSet(database=database, directory=directory)
    for stage in Stage:
        path = directory / stage.filename
        if path.is_file():
            artifact_set.add(ArtifactFile.from_path(stage, path))
    return artifact_set


# ============================================================================
# Import ledger
# ============================================================================


class StageResult(BaseModel):
    """Outcome of one stage within an import run."""

    stage: Stage
    outcome: ImportOutcome
    size_bytes: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None


class VerificationSnapshot(BaseModel):
    """Best-effort table/row counts read after an import.

    ``None`` means the count could not be read.
    """

    table_count: int | None = None
    row_count: int | None = None

    @property
    def available(self) -> bool:
        return self.table_count is not None


class ImportLedger(BaseModel):
    """Per-stage outcomes of one import run, in stage order.

    Stages after a halt are not recorded at all.
    """

    database: str
    source_dir: Path
    results: list[StageResult] = Field(default_factory=list)
    halted: bool = False
    total_bytes: int = 0
    elapsed_seconds: float = 0.0
    verification: VerificationSnapshot = Field(default_factory=VerificationSnapshot)

    def record(self, result: StageResult) -> None:
        self.results.append(result)

    def outcome_of(self, stage: Stage) -> ImportOutcome | None:
        for result in self.results:
            if result.stage is stage:
                return result.outcome
        return None

    def counts(self) -> dict[ImportOutcome, int]:
        """Number of stages per outcome (every outcome key present)."""
        counts = {outcome: 0 for outcome in ImportOutcome}
        for result in self.results:
            counts[result.outcome] += 1
        return counts

    def stages_with(self, outcome: ImportOutcome) -> list[Stage]:
        return [r.stage for r in self.results if r.outcome is outcome]

    @property
    def has_failures(self) -> bool:
        return any(r.outcome is ImportOutcome.FAILED for r in self.results)


# ============================================================================
# Database selection
# ============================================================================


class DatabaseSelection(BaseModel):
    """Explicit ordered database names, or every user database when ``None``."""

    names: list[str] | None = None

    @property
    def is_all(self) -> bool:
        return self.names is None

    @classmethod
    def from_csv(cls, value: str | None) -> "DatabaseSelection":
        """Parse a comma-separated list; empty or ``None`` selects all."""
        if not value or not value.strip():
            return cls()
        return cls(names=[name.strip() for name in value.split(",") if name.strip()])

    def describe(self) -> str:
        return "all" if self.names is None else ", ".join(self.names)
