"""Discover a backup's logical file names and restore it, at most once per database."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from ..capabilities import DatabaseService, Row
from ..errors import ResolutionError, RestoreError
from ..messages import INFO
from ..run import CommandError
from .tsql import quote_identifier, quote_literal


DATA: str = "D"
LOG: str = "L"
FILE_TYPES: frozenset[str] = frozenset({DATA, LOG, "F", "S"})  # data, log, full-text, filestream


@dataclass(frozen=True)
class BackupFile:
    """One row of a backup's file list.

    Attributes
    ----------
    logical_name : str
        The identifier used to refer to the file inside the backup.
    physical_name : str
        The path the file had on the server the backup was taken from.
    type : str
        The file type flag: `D` (data), `L` (log), `F` (full-text) or `S`
        (filestream).
    """
    logical_name: str
    physical_name: str
    type: str


@dataclass(frozen=True)
class LogicalNames:
    """The logical names needed to relocate a backup's files during restore."""
    data: str
    log: str


@dataclass(frozen=True)
class RestoreSpec:
    """A fully-resolved restore request.

    Attributes
    ----------
    database_name : str
        The database to create.
    backup_file : Path
        The backup to restore from.
    data_logical_name : str
        The logical name of the data file, discovered from the backup.
    log_logical_name : str
        The logical name of the log file, discovered from the backup.
    data_file_target : Path
        Where the data file is placed on the server.
    log_file_target : Path
        Where the log file is placed on the server.
    """
    database_name: str
    backup_file: Path
    data_logical_name: str
    log_logical_name: str
    data_file_target: Path
    log_file_target: Path

    def __post_init__(self) -> None:
        if not self.data_logical_name or not self.log_logical_name:
            raise ResolutionError("restore requires non-empty data and log logical names")


class RestoreOutcome(Enum):
    """The result of a `restore()` call that did not fail."""
    RESTORED = "restored"
    ALREADY_EXISTS = "already_exists"


def _render(rows: Iterable[Row]) -> str:
    return "\n".join("|".join(row) for row in rows)


def parse_filelist(rows: Iterable[Row]) -> list[BackupFile]:
    """Convert raw file-list rows into typed records.

    Parameters
    ----------
    rows : Iterable[Row]
        Result rows of a `RESTORE FILELISTONLY` query.  The first three columns
        must be the logical name, physical name and file type.

    Returns
    -------
    list[BackupFile]
        One record per row, in order.

    Raises
    ------
    ResolutionError
        If a row has too few columns, an empty logical name, or an unknown type flag.
    """
    rows = list(rows)
    files: list[BackupFile] = []
    for index, row in enumerate(rows, start=1):
        if len(row) < 3:
            raise ResolutionError(
                f"malformed backup file list: row {index} has {len(row)} column(s), "
                "expected at least 3",
                output=_render(rows),
            )
        logical, physical, kind = (col.strip() for col in row[:3])
        kind = kind.upper()
        if kind not in FILE_TYPES:
            raise ResolutionError(
                f"unexpected file type flag {kind!r} in backup file list row {index}",
                output=_render(rows),
            )
        if not logical:
            raise ResolutionError(
                f"empty logical name in backup file list row {index}",
                output=_render(rows),
            )
        files.append(BackupFile(logical_name=logical, physical_name=physical, type=kind))
    return files


def select_logical_names(files: list[BackupFile]) -> LogicalNames:
    """Pick the data and log file out of a parsed file list.

    Parameters
    ----------
    files : list[BackupFile]
        The parsed file list.

    Returns
    -------
    LogicalNames
        The logical names of the single data file and the single log file.

    Raises
    ------
    ResolutionError
        If the list is empty, or does not contain exactly one data file and exactly
        one log file.  No partial result is ever returned.
    """
    if not files:
        raise ResolutionError("backup file list is empty")
    listing = "\n".join(f"{f.logical_name}|{f.physical_name}|{f.type}" for f in files)

    found: dict[str, list[str]] = {DATA: [], LOG: []}
    for f in files:
        if f.type in found:
            found[f.type].append(f.logical_name)
    for kind, label in ((DATA, "data"), (LOG, "log")):
        names = found[kind]
        if not names:
            raise ResolutionError(
                f"unable to determine {label} logical file name from backup",
                output=listing,
            )
        if len(names) > 1:
            raise ResolutionError(
                f"backup contains {len(names)} {label} files ({', '.join(names)}); "
                "cannot choose one",
                output=listing,
            )
    return LogicalNames(data=found[DATA][0], log=found[LOG][0])


def resolve_logical_names(database: DatabaseService, backup_file: Path) -> LogicalNames:
    """Read a backup's metadata to find the logical names of its data and log files.

    This is a read-only query; the backup and the service are not modified.

    Parameters
    ----------
    database : DatabaseService
        The running database service.
    backup_file : Path
        The backup to inspect.

    Returns
    -------
    LogicalNames
        The discovered names, both non-empty.

    Raises
    ------
    ResolutionError
        If the query fails or either name cannot be determined.
    """
    INFO(f"reading logical file names from {backup_file}...")
    try:
        rows = database.execute_query(
            f"RESTORE FILELISTONLY FROM DISK = {quote_literal(backup_file)}",
            database="master",
        )
    except CommandError as err:
        raise ResolutionError(
            f"could not read file list from backup {backup_file}",
            output=err.output_text,
        ) from err

    names = select_logical_names(parse_filelist(rows))
    INFO(f"  data logical name: {names.data}")
    INFO(f"  log logical name:  {names.log}")
    return names


def restore_statement(spec: RestoreSpec) -> str:
    """Render the restore statement for a spec.

    Parameters
    ----------
    spec : RestoreSpec
        The restore request.

    Returns
    -------
    str
        A statement that restores the backup, relocates both files, replaces any
        existing files at the targets and brings the database online.
    """
    return (
        f"RESTORE DATABASE {quote_identifier(spec.database_name)}\n"
        f"FROM DISK = {quote_literal(spec.backup_file)}\n"
        "WITH\n"
        f"    MOVE {quote_literal(spec.data_logical_name)} "
        f"TO {quote_literal(spec.data_file_target)},\n"
        f"    MOVE {quote_literal(spec.log_logical_name)} "
        f"TO {quote_literal(spec.log_file_target)},\n"
        "    REPLACE, RECOVERY;"
    )


def database_exists(database: DatabaseService, name: str) -> bool:
    """
    Parameters
    ----------
    database : DatabaseService
        The running database service.
    name : str
        The database name to look for.

    Returns
    -------
    bool
        True if a database with this name is already present on the service.
    """
    rows = database.execute_query(
        f"SELECT name FROM sys.databases WHERE name = {quote_literal(name)}",
        database="master",
    )
    return any(row and row[0].strip() for row in rows)


def restore(database: DatabaseService, spec: RestoreSpec) -> RestoreOutcome:
    """Restore a backup unless the target database already exists.

    Parameters
    ----------
    database : DatabaseService
        The running database service.
    spec : RestoreSpec
        The restore request.

    Returns
    -------
    RestoreOutcome
        `ALREADY_EXISTS` if the database was present (nothing is done), otherwise
        `RESTORED`.

    Raises
    ------
    RestoreError
        If the existence check or the restore statement fails.
    """
    try:
        if database_exists(database, spec.database_name):
            INFO(f"database [{spec.database_name}] already exists, skipping restore")
            return RestoreOutcome.ALREADY_EXISTS

        INFO(f"restoring database [{spec.database_name}] from {spec.backup_file}...")
        database.execute_query(restore_statement(spec), database="master")
    except CommandError as err:
        raise RestoreError(
            f"failed to restore database [{spec.database_name}]",
            output=err.output_text,
        ) from err

    INFO("restore complete")
    return RestoreOutcome.RESTORED
