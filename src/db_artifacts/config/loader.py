"""Loading of the optional ``db-artifacts.toml`` defaults file."""

import tomllib
from pathlib import Path

from db_artifacts.config.models import ToolDefaults

DEFAULTS_FILENAME = "db-artifacts.toml"


def load_tool_defaults(config_path: Path | None = None) -> ToolDefaults:
    """Load CLI defaults from a TOML file.

    Args:
        config_path: Explicit path to a defaults file.  When ``None``,
            ``db-artifacts.toml`` in the working directory is used if it
            exists, otherwise built-in defaults are returned.

    Returns:
        ToolDefaults with ``export`` and ``import_`` sections.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` doesn't exist.
        ValueError: If the file isn't valid TOML or has invalid values.

    Example:
        # db-artifacts.toml
        # [export]
        # image = "mariadb:10.11"
        # [import]
        # host = "db.internal"
        defaults = load_tool_defaults()
        defaults.export.image   # 'mariadb:10.11'
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULTS_FILENAME
        if not config_path.exists():
            return ToolDefaults()
    elif not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    # pydantic's ValidationError is a ValueError subclass
    return ToolDefaults.model_validate(
        {
            "export": data.get("export", {}),
            "import": data.get("import", {}),
        }
    )
