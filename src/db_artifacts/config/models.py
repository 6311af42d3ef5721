"""Pydantic models for run configuration and the optional defaults file."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from db_artifacts.artifacts.models import STATUS_INTERVAL_SECONDS, DatabaseSelection

DEFAULT_IMAGE = "mariadb:10.5"
DEFAULT_CONTAINER_NAME = "mariadb_restore"
DEFAULT_ROOT_PASSWORD = "rootpass"


# ============================================================================
# Run configuration (immutable, built once per CLI invocation)
# ============================================================================


class ServiceConfig(BaseModel):
    """How to restore a backup and run the ephemeral server over it."""

    model_config = ConfigDict(frozen=True)

    backup_dir: Path
    restored_data_dir: Path = Path("./restored_data")
    image: str = DEFAULT_IMAGE
    container_name: str = DEFAULT_CONTAINER_NAME
    root_password: SecretStr = SecretStr(DEFAULT_ROOT_PASSWORD)
    probe_interval: float = 2.0     # seconds between readiness pings
    probe_attempts: int = 30        # ~60s at the default interval
    settle_delay: float = 3.0       # wait after the first successful ping


class ExportConfig(BaseModel):
    """A complete export run."""

    model_config = ConfigDict(frozen=True)

    service: ServiceConfig
    output_dir: Path = Path("./output")
    selection: DatabaseSelection = Field(default_factory=DatabaseSelection)
    include_full: bool = True


class TargetConfig(BaseModel):
    """Connection settings for the server an import writes to."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: SecretStr = SecretStr("")
    max_allowed_packet: str = "512M"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class ImportConfig(BaseModel):
    """A complete import run."""

    model_config = ConfigDict(frozen=True)

    database: str
    source_dir: Path
    target: TargetConfig = Field(default_factory=TargetConfig)
    status_interval: float = STATUS_INTERVAL_SECONDS


# ============================================================================
# Defaults file (db-artifacts.toml)
# ============================================================================


class ExportDefaults(BaseModel):
    """``[export]`` table of the defaults file."""

    backup_dir: Path = Path("./backup")
    output_dir: Path = Path("./output")
    restored_data_dir: Path = Path("./restored_data")
    image: str = DEFAULT_IMAGE
    container_name: str = DEFAULT_CONTAINER_NAME
    probe_attempts: int = 30


class ImportDefaults(BaseModel):
    """``[import]`` table of the defaults file."""

    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    max_allowed_packet: str = "512M"
    status_interval: float = STATUS_INTERVAL_SECONDS


class ToolDefaults(BaseModel):
    """Everything the defaults file can set. Passwords are never read from it."""

    model_config = ConfigDict(populate_by_name=True)

    export: ExportDefaults = Field(default_factory=ExportDefaults)
    import_: ImportDefaults = Field(default_factory=ImportDefaults, alias="import")
