from __future__ import annotations

from pathlib import Path

import pytest

from dbcontainerizer.context import ArtifactLayout
from dbcontainerizer.errors import BuildError, ExtractionError
from dbcontainerizer.pipeline.artifacts import ArtifactKind
from dbcontainerizer.pipeline.schema import extract_schema, scaffold_sql_project

from tests.fakes import FakeBuildTool, FakeExtractor, command_error, make_context


def test_scaffold_recreates_project_directory(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    layout = ArtifactLayout.of(ctx)
    layout.project_dir.mkdir(parents=True)
    (layout.project_dir / "old.sql").write_text("-- stale")
    tool = FakeBuildTool()

    project = scaffold_sql_project(tool, layout, "Sales")
    assert project.solution == layout.root / "Sales.sln"
    assert project.project_file == layout.project_dir / "Sales.sqlproj"
    assert not (layout.project_dir / "old.sql").exists()
    assert layout.dist_dir.is_dir()
    assert tool.calls[1] == (
        "create_project", "sqlproj", str(layout.project_dir), "Sales", str(project.solution),
    )


def test_scaffold_wraps_tool_failure(tmp_path: Path) -> None:
    layout = ArtifactLayout.of(make_context(tmp_path))
    with pytest.raises(BuildError, match="failed to create schema project"):
        scaffold_sql_project(FakeBuildTool(fail_on="create_solution"), layout, "Sales")


def test_extract_moves_files_into_project(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    layout = ArtifactLayout.of(ctx)
    project = scaffold_sql_project(FakeBuildTool(), layout, "Sales")
    extractor = FakeExtractor()

    artifact = extract_schema(extractor, ctx.connection(), layout, project.project_file)
    assert artifact.kind is ArtifactKind.SCHEMA_PROJECT
    assert artifact.path == layout.project_dir
    assert artifact.versioned_file_name == "Sales.sqlproj"
    assert (layout.project_dir / "dbo" / "Tables" / "Customers.sql").is_file()
    assert (layout.project_dir / "acct" / "Tables" / "Ledger.sql").is_file()
    assert (layout.project_dir / "Sales.sqlproj").is_file()
    assert not layout.staging_dir.exists()

    ((connection, target),) = extractor.calls
    assert target == layout.staging_dir
    assert connection.database == "Sales"


def test_extract_replaces_existing_entries(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    layout = ArtifactLayout.of(ctx)
    project = scaffold_sql_project(FakeBuildTool(), layout, "Sales")
    (layout.project_dir / "dbo").mkdir()
    (layout.project_dir / "dbo" / "Stale.sql").write_text("-- stale")

    extract_schema(FakeExtractor(), ctx.connection(), layout, project.project_file)
    assert not (layout.project_dir / "dbo" / "Stale.sql").exists()


def test_extract_requires_output(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    layout = ArtifactLayout.of(ctx)
    project = scaffold_sql_project(FakeBuildTool(), layout, "Sales")
    with pytest.raises(ExtractionError, match="no files"):
        extract_schema(FakeExtractor(files=()), ctx.connection(), layout, project.project_file)


def test_extract_wraps_tool_failure(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    layout = ArtifactLayout.of(ctx)
    project = scaffold_sql_project(FakeBuildTool(), layout, "Sales")
    extractor = FakeExtractor(error=command_error("sqlpackage", stderr="Login failed"))
    with pytest.raises(ExtractionError) as excinfo:
        extract_schema(extractor, ctx.connection(), layout, project.project_file)
    assert excinfo.value.output == "Login failed"
