"""Scaffold the schema project and fill it from the live database."""
from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from ..capabilities import BuildTool, ConnectionInfo, SchemaExtractionTool
from ..context import ArtifactLayout
from ..errors import BuildError, ExtractionError
from ..messages import INFO
from ..run import CommandError
from .artifacts import ArtifactDescriptor, ArtifactKind


@dataclass(frozen=True)
class SqlProject:
    """The solution and schema project created for a run."""
    solution: Path
    project_file: Path


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def scaffold_sql_project(tool: BuildTool, layout: ArtifactLayout, name: str) -> SqlProject:
    """Recreate an empty schema project and its solution.

    Any previous project directory is deleted first, so re-running the pipeline never
    mixes old and new schema files.

    Parameters
    ----------
    tool : BuildTool
        The build tool used to create the solution and project.
    layout : ArtifactLayout
        The output layout of the run.
    name : str
        The database name, used for both the solution and the project.

    Returns
    -------
    SqlProject
        Paths to the created solution and project file.

    Raises
    ------
    BuildError
        If the build tool fails to create either file.
    """
    INFO(f"creating schema project in {layout.project_dir}...")
    _remove(layout.project_dir)
    layout.project_dir.mkdir(parents=True)
    layout.dist_dir.mkdir(parents=True, exist_ok=True)
    try:
        solution = tool.create_solution(layout.root, name)
        project_file = tool.create_project(
            "sqlproj",
            layout.project_dir,
            name,
            solution=solution,
        )
    except CommandError as err:
        raise BuildError(
            f"failed to create schema project {name}",
            output=err.output_text,
        ) from err
    return SqlProject(solution=solution, project_file=project_file)


def extract_schema(
    tool: SchemaExtractionTool,
    connection: ConnectionInfo,
    layout: ArtifactLayout,
    project_file: Path,
) -> ArtifactDescriptor:
    """Extract one file per schema object into a staging directory, then move the
    results into the project directory and delete the staging directory.

    Parameters
    ----------
    tool : SchemaExtractionTool
        The extraction tool.
    connection : ConnectionInfo
        Connection details for the restored database.
    layout : ArtifactLayout
        The output layout of the run.
    project_file : Path
        The project file that the extracted files belong to.

    Returns
    -------
    ArtifactDescriptor
        A `SCHEMA_PROJECT` descriptor for the filled project.

    Raises
    ------
    ExtractionError
        If the tool fails, or leaves nothing in the staging directory.
    """
    staging = layout.staging_dir
    _remove(staging)

    INFO(f"extracting schema of [{connection.database}] into {staging}...")
    try:
        tool.extract(connection, staging)
    except CommandError as err:
        raise ExtractionError(
            f"schema extraction failed for [{connection.database}]",
            output=err.output_text,
        ) from err

    staged = sorted(staging.iterdir()) if staging.is_dir() else []
    if not staged:
        _remove(staging)
        raise ExtractionError(f"schema extraction produced no files in {staging}")

    for entry in staged:
        target = layout.project_dir / entry.name
        _remove(target)
        shutil.move(str(entry), str(target))
    _remove(staging)

    INFO(f"schema project extracted to {layout.project_dir} ({len(staged)} entries)")
    return ArtifactDescriptor(
        kind=ArtifactKind.SCHEMA_PROJECT,
        name=project_file.stem,
        versioned_file_name=project_file.name,
        path=layout.project_dir,
    )
