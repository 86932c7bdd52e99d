from __future__ import annotations

from pathlib import Path

import pytest

from dbcontainerizer.context import ArtifactLayout
from dbcontainerizer.errors import BuildError
from dbcontainerizer.pipeline.artifacts import ArtifactKind, build_artifacts, versioned_name

from tests.fakes import FakeBuildTool, make_context


def _project(tmp_path: Path) -> tuple[ArtifactLayout, Path]:
    layout = ArtifactLayout.of(make_context(tmp_path))
    layout.project_dir.mkdir(parents=True)
    project = layout.project_dir / "Sales.sqlproj"
    project.write_text("<Project />")
    return layout, project


def test_versioned_name() -> None:
    assert versioned_name("Sales", "2.1.0", ".dacpac") == "Sales.2.1.0.dacpac"


def test_build_publishes_versioned_binary(tmp_path: Path) -> None:
    layout, project = _project(tmp_path)
    tool = FakeBuildTool()

    outputs = build_artifacts(tool, layout, project, "2.1.0")
    assert not outputs.warnings
    assert outputs.binary is not None
    assert outputs.binary.kind is ArtifactKind.COMPILED_PACKAGE
    assert outputs.binary.path == layout.dist_dir / "Sales.2.1.0.dacpac"
    assert outputs.binary.path.read_bytes() == b"dacpac 2.1.0"
    assert outputs.package is not None
    assert outputs.package.kind is ArtifactKind.SCHEMA_PACKAGE
    assert outputs.package.versioned_file_name == "Sales.2.1.0.nupkg"
    assert [call[0] for call in tool.calls] == ["build", "package"]
    assert all(call[2] == "2.1.0" for call in tool.calls)


def test_missing_binary_is_a_warning(tmp_path: Path) -> None:
    layout, project = _project(tmp_path)
    outputs = build_artifacts(FakeBuildTool(produce_binary=False), layout, project, "1.0.0")
    assert outputs.binary is None
    assert outputs.package is not None
    assert len(outputs.warnings) == 1
    assert "compiled schema missing" in outputs.warnings[0]
    assert not (layout.dist_dir / "Sales.1.0.0.dacpac").exists()


def test_missing_package_is_a_warning(tmp_path: Path) -> None:
    layout, project = _project(tmp_path)
    outputs = build_artifacts(FakeBuildTool(produce_packages=False), layout, project, "1.0.0")
    assert outputs.binary is not None
    assert outputs.package is None
    assert len(outputs.warnings) == 1


@pytest.mark.parametrize("step", ["build", "package"])
def test_tool_failure_is_fatal(tmp_path: Path, step: str) -> None:
    layout, project = _project(tmp_path)
    with pytest.raises(BuildError) as excinfo:
        build_artifacts(FakeBuildTool(fail_on=step), layout, project, "1.0.0")
    assert f"{step} failed" in excinfo.value.output
