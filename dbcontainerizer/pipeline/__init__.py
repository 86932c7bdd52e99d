"""Stages of the database build pipeline and the state machine that drives them."""
from .artifacts import ArtifactDescriptor, ArtifactKind, BuildOutputs, build_artifacts
from .driver import Pipeline, Toolchain
from .manifest import Manifest, write_manifest
from .model import (
    ConfigOrigin,
    GeneratorConfig,
    apply_defaults,
    generate_model,
    resolve_generator_config,
    scaffold_model_project,
    write_generator_config,
)
from .readiness import wait_until_ready
from .renaming import SchemaNameSet, generate_schema_renaming, query_schema_names
from .restore import (
    BackupFile,
    LogicalNames,
    RestoreOutcome,
    RestoreSpec,
    parse_filelist,
    resolve_logical_names,
    restore,
    select_logical_names,
)
from .schema import SqlProject, extract_schema, scaffold_sql_project
from .state import RunState, Stage
