"""Run configuration models and the optional TOML defaults file.

Usage:
    >>> from db_artifacts.config import ExportConfig, ImportConfig, load_tool_defaults
"""

from db_artifacts.config.loader import load_tool_defaults
from db_artifacts.config.models import (
    ExportConfig,
    ExportDefaults,
    ImportConfig,
    ImportDefaults,
    ServiceConfig,
    TargetConfig,
    ToolDefaults,
)

__all__ = [
    "load_tool_defaults",
    "ExportConfig",
    "ExportDefaults",
    "ImportConfig",
    "ImportDefaults",
    "ServiceConfig",
    "TargetConfig",
    "ToolDefaults",
]
