"""Resolve the model generator's configuration, run the generator against the compiled
schema, and package the generated model project.
"""
from __future__ import annotations

import copy
import json
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..capabilities import BuildTool, HttpFetch, ModelGeneratorTool
from ..context import ArtifactLayout, BuildContext
from ..errors import BuildError, GenerationError
from ..messages import INFO, WARN
from ..run import CommandError, atomic_write_text
from .artifacts import ArtifactDescriptor, ArtifactKind


DEFAULT_TEMPLATE_URL: str = (
    "https://raw.githubusercontent.com/ErikEJ/EFCorePowerTools/refs/heads/master/"
    "samples/efcpt-config.json"
)
CONFIG_FILE_NAME: str = "efcpt-config.json"
MODEL_PACKAGES: tuple[str, ...] = (
    "Microsoft.EntityFrameworkCore.SqlServer",
    "Microsoft.EntityFrameworkCore.Design",
    "Microsoft.EntityFrameworkCore.SqlServer.NetTopologySuite",
    "Microsoft.EntityFrameworkCore.SqlServer.HierarchyId",
)
BOILERPLATE: tuple[str, ...] = ("Class1.cs",)


class ConfigOrigin(Enum):
    """Where a generator configuration came from, in priority order."""
    LOCAL_FILE = "local-file"
    REMOTE_URL = "remote-url"
    DEFAULT_TEMPLATE = "default-template"


@dataclass(frozen=True)
class GeneratorConfig:
    """A resolved generator configuration document.

    Attributes
    ----------
    origin : ConfigOrigin
        Which source was selected.  Exactly one source is used per run.
    source : str
        The file path or URL the document was read from.
    document : dict[str, Any]
        The parsed (and, for the default template, patched) configuration.
    """
    origin: ConfigOrigin
    source: str
    document: dict[str, Any]

    def render(self) -> str:
        """
        Returns
        -------
        str
            The document as indented JSON.
        """
        return json.dumps(self.document, indent=2) + "\n"


def _parse(data: bytes, source: str) -> dict[str, Any]:
    try:
        document = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        raise GenerationError(f"generator config from {source} is not valid JSON: {err}") from err
    if not isinstance(document, dict):
        raise GenerationError(
            f"generator config from {source} must be a JSON object, not "
            f"{type(document).__name__}"
        )
    return document


def _fetch(fetch: HttpFetch, url: str) -> bytes:
    try:
        return fetch.get(url)
    except OSError as err:
        raise GenerationError(f"failed to download generator config from {url}: {err}") from err


def _section(document: dict[str, Any], key: str) -> dict[str, Any]:
    value = document.get(key)
    if not isinstance(value, dict):
        value = {}
        document[key] = value
    return value


def apply_defaults(
    template: dict[str, Any],
    database_name: str,
    excluded_procedures: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Patch the canonical template with the fields derived from the database.

    Parameters
    ----------
    template : dict[str, Any]
        The canonical template.  Not modified.
    database_name : str
        The restored database, which determines namespaces and the context name.
    excluded_procedures : tuple[str, ...], optional
        Stored procedures to exclude from generation.  If empty, no procedure filter
        is applied.

    Returns
    -------
    dict[str, Any]
        A patched copy of the template.
    """
    document = copy.deepcopy(template)

    # no object filters -> generate everything
    document["tables"] = None
    document["views"] = None
    document["functions"] = None
    document["stored-procedures"] = [
        {"name": name, "include": False} for name in excluded_procedures
    ] or None

    names = _section(document, "names")
    names["root-namespace"] = f"{database_name}.EntityFrameworkCore"
    names["dbcontext-name"] = f"{database_name}Context"
    names["dbcontext-namespace"] = ""
    names["model-namespace"] = "Models"

    layout = _section(document, "file-layout")
    layout["split-dbcontext-preview"] = True
    layout["output-dbcontext-path"] = "."
    layout["output-path"] = "Models"
    layout["use-schema-folders-preview"] = True
    layout["use-schema-namespaces-preview"] = True

    mappings = _section(document, "type-mappings")
    mappings["use-DateOnly-TimeOnly"] = True
    mappings["use-HierarchyId"] = True
    mappings["use-spatial"] = True
    return document


def resolve_generator_config(
    ctx: BuildContext,
    fetch: HttpFetch,
    *,
    template_url: str = DEFAULT_TEMPLATE_URL,
) -> GeneratorConfig:
    """Select the generator configuration.  The first matching source wins:

    1. `ctx.generator_config_file`, if it names an existing file,
    2. `ctx.generator_config_url`, if set,
    3. the canonical template at `template_url`, patched by `apply_defaults()`.

    Sources are never mixed, and lower-priority sources are not touched once a
    higher-priority one matches.

    Parameters
    ----------
    ctx : BuildContext
        The run configuration.
    fetch : HttpFetch
        Used for the URL and template sources.
    template_url : str, optional
        The canonical template location.

    Returns
    -------
    GeneratorConfig
        The selected configuration.

    Raises
    ------
    GenerationError
        If the selected source cannot be read or is not a JSON object.
    """
    path = ctx.generator_config_file
    if path is not None:
        if path.is_file():
            INFO(f"using generator config file: {path}")
            try:
                data = path.read_bytes()
            except OSError as err:
                raise GenerationError(f"failed to read generator config {path}: {err}") from err
            return GeneratorConfig(ConfigOrigin.LOCAL_FILE, str(path), _parse(data, str(path)))
        WARN(f"generator config file not found, ignoring: {path}")

    url = ctx.generator_config_url
    if url:
        INFO(f"downloading generator config from: {url}")
        return GeneratorConfig(ConfigOrigin.REMOTE_URL, url, _parse(_fetch(fetch, url), url))

    INFO("using default generator config template")
    template = _parse(_fetch(fetch, template_url), template_url)
    return GeneratorConfig(
        ConfigOrigin.DEFAULT_TEMPLATE,
        template_url,
        apply_defaults(template, ctx.database_name, ctx.excluded_procedures),
    )


def write_generator_config(config: GeneratorConfig, output_dir: Path) -> ArtifactDescriptor:
    """Write a resolved configuration where the generator looks for it.

    Parameters
    ----------
    config : GeneratorConfig
        The resolved configuration.
    output_dir : Path
        The model project directory.

    Returns
    -------
    ArtifactDescriptor
        A `CONFIG_DOCUMENT` descriptor for the written file.
    """
    target = output_dir / CONFIG_FILE_NAME
    atomic_write_text(target, config.render())
    return ArtifactDescriptor(
        kind=ArtifactKind.CONFIG_DOCUMENT,
        name=CONFIG_FILE_NAME,
        versioned_file_name=CONFIG_FILE_NAME,
        path=target,
    )


def scaffold_model_project(
    tool: BuildTool,
    layout: ArtifactLayout,
    framework_version: str,
    *,
    solution: Path | None = None,
) -> Path:
    """Recreate the model class library and add the framework packages it needs.

    Parameters
    ----------
    tool : BuildTool
        The build tool.
    layout : ArtifactLayout
        The output layout of the run.
    framework_version : str
        The version of the model framework packages.
    solution : Path | None, optional
        A solution to add the project to.

    Returns
    -------
    Path
        The created project file.

    Raises
    ------
    BuildError
        If the project cannot be created or a package cannot be added.
    """
    INFO(f"creating model project {layout.model_project_name} in {layout.model_dir}...")
    if layout.model_dir.exists():
        shutil.rmtree(layout.model_dir)
    try:
        project_file = tool.create_project(
            "classlib",
            layout.model_dir,
            layout.model_project_name,
            solution=solution,
        )
        for package in MODEL_PACKAGES:
            tool.add_package(project_file, package, framework_version)
    except CommandError as err:
        raise BuildError(
            f"failed to create model project {layout.model_project_name}",
            output=err.output_text,
        ) from err
    return project_file


def generate_model(
    generator: ModelGeneratorTool,
    tool: BuildTool,
    layout: ArtifactLayout,
    binary_path: Path,
    config_path: Path,
    project_file: Path,
    version: str,
) -> ArtifactDescriptor | None:
    """Generate the model from the compiled schema, then build and pack it.

    The configuration (and renaming document) must already be in the project
    directory next to `config_path`.

    Parameters
    ----------
    generator : ModelGeneratorTool
        The model generator.
    tool : BuildTool
        The build tool.
    layout : ArtifactLayout
        The output layout of the run.
    binary_path : Path
        The compiled schema artifact.
    config_path : Path
        The written generator configuration.
    project_file : Path
        The model project.
    version : str
        The version stamped into the model package.

    Returns
    -------
    ArtifactDescriptor | None
        A `GENERATED_MODEL_PACKAGE` descriptor, or None if the package was not
        found after a successful pack (a warning is printed).

    Raises
    ------
    GenerationError
        If the generator fails or generates nothing.
    BuildError
        If the generated project cannot be built or packed.
    """
    INFO(f"generating model in {project_file.parent} from {binary_path}...")
    try:
        generated = generator.generate(binary_path, config_path)
    except CommandError as err:
        raise GenerationError(
            f"model generation failed for {binary_path}",
            output=err.output_text,
        ) from err
    if not [p for p in generated if p.name not in BOILERPLATE]:
        raise GenerationError(f"model generator produced no files from {binary_path}")

    for name in BOILERPLATE:
        (project_file.parent / name).unlink(missing_ok=True)

    INFO(f"building {project_file.name} with version {version}...")
    try:
        tool.build(project_file, version)
        package = tool.package(project_file, version, layout.dist_dir)
    except CommandError as err:
        raise BuildError(f"failed to build {project_file}", output=err.output_text) from err

    if not package.is_file():
        WARN(f"model package missing at {package}")
        return None
    return ArtifactDescriptor(
        kind=ArtifactKind.GENERATED_MODEL_PACKAGE,
        name=project_file.stem,
        versioned_file_name=package.name,
        path=package,
    )
