"""Generate the schema renaming document consumed by the model generator."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from ..capabilities import DatabaseService
from ..errors import GenerationError
from ..messages import INFO
from ..run import CommandError, atomic_write_text
from .tsql import quote_identifier, quote_literal


DEFAULT_SCHEMA: str = "dbo"
RENAMING_FILE_NAME: str = "efpt.renaming.json"


@dataclass(frozen=True)
class SchemaNameSet:
    """An ordered, duplicate-free set of non-default schema names.

    Use `SchemaNameSet.of()` to build one; names are sorted ascending
    (case-insensitively, then by exact text), and the default schema is dropped.
    """
    names: tuple[str, ...] = ()

    @classmethod
    def of(cls, names: Iterable[str], *, default: str = DEFAULT_SCHEMA) -> SchemaNameSet:
        """
        Parameters
        ----------
        names : Iterable[str]
            Raw schema names.  Surrounding whitespace is stripped and blank names are
            skipped.
        default : str, optional
            The default schema to exclude.

        Returns
        -------
        SchemaNameSet
            The normalized set.
        """
        unique = {n.strip() for n in names if n.strip() and n.strip() != default}
        return cls(tuple(sorted(unique, key=lambda n: (n.casefold(), n))))

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)

    def records(self) -> list[dict[str, object]]:
        """
        Returns
        -------
        list[dict[str, object]]
            One renaming record per schema, in order.
        """
        return [{"SchemaName": name, "UseSchemaName": True} for name in self.names]

    def render(self) -> str:
        """Render the renaming document.

        Returns
        -------
        str
            A JSON array of records, or exactly `[]` for an empty set.
        """
        return json.dumps(self.records(), indent=2) + "\n"


def query_schema_names(database: DatabaseService, database_name: str) -> SchemaNameSet:
    """Read the non-default schema names of a database from its catalog.

    Parameters
    ----------
    database : DatabaseService
        The running database service.
    database_name : str
        The database whose catalog is read.  The query itself runs against
        `master`, which avoids default-database login issues.

    Returns
    -------
    SchemaNameSet
        The schema names, excluding the default schema.

    Raises
    ------
    GenerationError
        If the catalog query fails.
    """
    try:
        rows = database.execute_query(
            f"SELECT name FROM {quote_identifier(database_name)}.sys.schemas "
            f"WHERE name <> {quote_literal(DEFAULT_SCHEMA)} ORDER BY name",
            database="master",
        )
    except CommandError as err:
        raise GenerationError(
            f"failed to read schema names of [{database_name}]",
            output=err.output_text,
        ) from err
    return SchemaNameSet.of(row[0] for row in rows if row)


def generate_schema_renaming(
    database: DatabaseService,
    database_name: str,
    output_dir: Path,
) -> SchemaNameSet:
    """Write `efpt.renaming.json` for a database into `output_dir`.

    Parameters
    ----------
    database : DatabaseService
        The running database service.
    database_name : str
        The restored database.
    output_dir : Path
        The directory to write into.  Created if missing.

    Returns
    -------
    SchemaNameSet
        The schema names that were written.
    """
    schemas = query_schema_names(database, database_name)
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / RENAMING_FILE_NAME
    atomic_write_text(target, schemas.render())
    INFO(
        f"wrote {target} with {len(schemas)} schema(s)"
        + (f": {', '.join(schemas)}" if schemas.names else "")
    )
    return schemas
