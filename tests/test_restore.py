from __future__ import annotations

from pathlib import Path

import pytest

from dbcontainerizer.errors import ResolutionError, RestoreError
from dbcontainerizer.pipeline.restore import (
    BackupFile,
    LogicalNames,
    RestoreOutcome,
    RestoreSpec,
    parse_filelist,
    resolve_logical_names,
    restore,
    restore_statement,
    select_logical_names,
)
from dbcontainerizer.pipeline.tsql import quote_identifier, quote_literal

from tests.fakes import FILELIST, FakeDatabase


def spec(name: str = "Sales") -> RestoreSpec:
    return RestoreSpec(
        database_name=name,
        backup_file=Path("/var/opt/mssql/backup/Sales.bak"),
        data_logical_name="Sales_Data",
        log_logical_name="Sales_Log",
        data_file_target=Path(f"/var/opt/mssql/data/{name}.mdf"),
        log_file_target=Path(f"/var/opt/mssql/data/{name}_log.ldf"),
    )


######################
####    QUOTING   ####
######################


def test_quote_identifier_escapes_brackets() -> None:
    assert quote_identifier("Sales") == "[Sales]"
    assert quote_identifier("a]b") == "[a]]b]"


def test_quote_literal_escapes_quotes() -> None:
    assert quote_literal("O'Brien") == "N'O''Brien'"
    assert quote_literal(Path("/tmp/x.bak")) == "N'/tmp/x.bak'"


#######################
####    FILELIST   ####
#######################


def test_parse_filelist() -> None:
    files = parse_filelist(FILELIST)
    assert files == [
        BackupFile("Sales_Data", r"C:\mssql\Sales.mdf", "D"),
        BackupFile("Sales_Log", r"C:\mssql\Sales_log.ldf", "L"),
    ]


def test_parse_filelist_normalizes_type_flag() -> None:
    files = parse_filelist([(" Data ", "/x.mdf", "d")])
    assert files == [BackupFile("Data", "/x.mdf", "D")]


@pytest.mark.parametrize(
    "rows",
    [
        [("Sales_Data", "/x.mdf")],
        [("Sales_Data", "/x.mdf", "X")],
        [("", "/x.mdf", "D")],
    ],
)
def test_parse_filelist_rejects_malformed_rows(rows: list[tuple[str, ...]]) -> None:
    with pytest.raises(ResolutionError):
        parse_filelist(rows)


def test_select_logical_names_ignores_other_file_types() -> None:
    files = [
        BackupFile("Sales_Data", "/x.mdf", "D"),
        BackupFile("Sales_FT", "/x.ft", "F"),
        BackupFile("Sales_Log", "/x.ldf", "L"),
    ]
    assert select_logical_names(files) == LogicalNames(data="Sales_Data", log="Sales_Log")


@pytest.mark.parametrize(
    "files, match",
    [
        ([], "empty"),
        ([BackupFile("Sales_Data", "/x.mdf", "D")], "log logical file name"),
        ([BackupFile("Sales_Log", "/x.ldf", "L")], "data logical file name"),
        (
            [
                BackupFile("A", "/a.mdf", "D"),
                BackupFile("B", "/b.ndf", "D"),
                BackupFile("L", "/l.ldf", "L"),
            ],
            "2 data files",
        ),
    ],
)
def test_select_logical_names_requires_one_of_each(files: list[BackupFile], match: str) -> None:
    with pytest.raises(ResolutionError, match=match):
        select_logical_names(files)


def test_resolve_logical_names_queries_master() -> None:
    database = FakeDatabase()
    names = resolve_logical_names(database, Path("/backup/Sales.bak"))
    assert names == LogicalNames(data="Sales_Data", log="Sales_Log")
    assert database.queries == [
        ("master", "RESTORE FILELISTONLY FROM DISK = N'/backup/Sales.bak'"),
    ]


def test_resolve_logical_names_wraps_tool_failure() -> None:
    database = FakeDatabase(fail_on="FILELISTONLY")
    with pytest.raises(ResolutionError) as excinfo:
        resolve_logical_names(database, Path("/backup/Sales.bak"))
    assert "Msg 3201" in excinfo.value.output


def test_resolve_logical_names_reports_listing_when_log_missing() -> None:
    database = FakeDatabase(filelist=[FILELIST[0]])
    with pytest.raises(ResolutionError) as excinfo:
        resolve_logical_names(database, Path("/backup/Sales.bak"))
    assert "Sales_Data" in excinfo.value.output


######################
####    RESTORE   ####
######################


def test_restore_spec_requires_logical_names() -> None:
    with pytest.raises(ResolutionError):
        RestoreSpec(
            database_name="Sales",
            backup_file=Path("/b.bak"),
            data_logical_name="",
            log_logical_name="Sales_Log",
            data_file_target=Path("/d.mdf"),
            log_file_target=Path("/d.ldf"),
        )


def test_restore_statement_moves_both_files() -> None:
    statement = restore_statement(spec())
    assert statement.startswith("RESTORE DATABASE [Sales]\n")
    assert "FROM DISK = N'/var/opt/mssql/backup/Sales.bak'" in statement
    assert "MOVE N'Sales_Data' TO N'/var/opt/mssql/data/Sales.mdf'" in statement
    assert "MOVE N'Sales_Log' TO N'/var/opt/mssql/data/Sales_log.ldf'" in statement
    assert statement.endswith("REPLACE, RECOVERY;")


def test_restore_is_idempotent() -> None:
    database = FakeDatabase()
    assert restore(database, spec()) is RestoreOutcome.RESTORED
    assert restore(database, spec()) is RestoreOutcome.ALREADY_EXISTS
    assert database.restored == ["Sales"]


def test_restore_skips_existing_database() -> None:
    database = FakeDatabase(existing=["Sales"])
    assert restore(database, spec()) is RestoreOutcome.ALREADY_EXISTS
    assert not database.restored
    assert all(not sql.startswith("RESTORE DATABASE") for _, sql in database.queries)


def test_restore_wraps_tool_failure() -> None:
    database = FakeDatabase(fail_on="RESTORE DATABASE")
    with pytest.raises(RestoreError, match=r"\[Sales\]") as excinfo:
        restore(database, spec())
    assert "Msg 3201" in excinfo.value.output
