"""Artifact records and the build step that compiles the extracted schema project."""
from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..capabilities import BuildTool
from ..context import ArtifactLayout
from ..errors import BuildError
from ..messages import INFO, WARN
from ..run import CommandError


class ArtifactKind(Enum):
    """The kinds of artifact a run can produce."""
    SCHEMA_PROJECT = "schema-project"
    COMPILED_PACKAGE = "compiled-package"
    SCHEMA_PACKAGE = "schema-package"
    GENERATED_MODEL_PACKAGE = "generated-model-package"
    CONFIG_DOCUMENT = "config-document"


@dataclass(frozen=True)
class ArtifactDescriptor:
    """An immutable record of one produced artifact.

    Attributes
    ----------
    kind : ArtifactKind
        What the artifact is.
    name : str
        The logical name of the artifact (usually a project name).
    versioned_file_name : str
        The file name under which the artifact was published.
    path : Path
        Where the artifact lives on disk.
    """
    kind: ArtifactKind
    name: str
    versioned_file_name: str
    path: Path


@dataclass
class BuildOutputs:
    """What `build_artifacts()` produced.  Either artifact may be missing, in which
    case a warning explains why.
    """
    binary: ArtifactDescriptor | None = None
    package: ArtifactDescriptor | None = None
    warnings: list[str] = field(default_factory=list)


def versioned_name(name: str, version: str, suffix: str) -> str:
    """
    >>> versioned_name("Sales", "2.1.0", ".dacpac")
    'Sales.2.1.0.dacpac'
    """
    return f"{name}.{version}{suffix}"


def build_artifacts(
    tool: BuildTool,
    layout: ArtifactLayout,
    project_file: Path,
    version: str,
) -> BuildOutputs:
    """Build and pack the schema project, then publish the compiled schema under a
    versioned, immutable file name in the distribution directory.

    Parameters
    ----------
    tool : BuildTool
        The build tool.
    layout : ArtifactLayout
        The output layout of the run.
    project_file : Path
        The extracted schema project.
    version : str
        The version to stamp into every version-bearing build property.

    Returns
    -------
    BuildOutputs
        Descriptors for the published compiled schema and package, where present.

    Raises
    ------
    BuildError
        If the build or pack command fails.  A missing output after a successful
        command is only a warning.
    """
    name = project_file.stem
    layout.dist_dir.mkdir(parents=True, exist_ok=True)

    INFO(f"building {project_file.name} with version {version}...")
    try:
        binary = tool.build(project_file, version)
        package = tool.package(project_file, version, layout.dist_dir)
    except CommandError as err:
        raise BuildError(f"failed to build {project_file}", output=err.output_text) from err

    outputs = BuildOutputs()
    if binary.is_file():
        target = layout.dist_dir / versioned_name(name, version, binary.suffix)
        INFO(f"copying {binary.name} to {target}")
        shutil.copy2(binary, target)
        outputs.binary = ArtifactDescriptor(
            kind=ArtifactKind.COMPILED_PACKAGE,
            name=name,
            versioned_file_name=target.name,
            path=target,
        )
    else:
        message = f"compiled schema missing at {binary}"
        WARN(message)
        outputs.warnings.append(message)

    if package.is_file():
        outputs.package = ArtifactDescriptor(
            kind=ArtifactKind.SCHEMA_PACKAGE,
            name=name,
            versioned_file_name=package.name,
            path=package,
        )
    else:
        message = f"schema project package missing at {package}"
        WARN(message)
        outputs.warnings.append(message)
    return outputs
