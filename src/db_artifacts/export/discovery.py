"""Resolve which databases an export run covers."""

from db_artifacts.adapters.base import SqlClient
from db_artifacts.artifacts.models import EXCLUDED_DATABASES, DatabaseSelection


class NoDatabasesFound(Exception):
    """Raised when a selection resolves to an empty database list."""

    pass


async def list_user_databases(client: SqlClient) -> list[str]:
    """All databases on the server except the system schemas.

    Exclusion is an exact, case-sensitive match against
    ``EXCLUDED_DATABASES``.
    """
    rows = await client.query("SHOW DATABASES")
    return [row[0] for row in rows if row[0] not in EXCLUDED_DATABASES]


async def resolve_databases(
    client: SqlClient, selection: DatabaseSelection
) -> list[str]:
    """Turn a selection into an ordered list of database names.

    Explicit names are returned trimmed, in the given order, without an
    existence check (``export_database`` checks each one).  An "all"
    selection asks the server.

    Raises:
        NoDatabasesFound: If the result is empty.
    """
    if selection.names is not None:
        names = [name.strip() for name in selection.names if name.strip()]
    else:
        names = await list_user_databases(client)

    if not names:
        raise NoDatabasesFound("No databases found to export.")
    return names
