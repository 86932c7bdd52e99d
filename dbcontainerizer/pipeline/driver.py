"""The build pipeline: a strictly sequential state machine that restores a backup into
a background database service, derives build artifacts from it, and records them in a
manifest.

Each stage either completes, records a non-fatal warning on the run state, or raises a
`PipelineError`.  The driver is the only place where errors are handled: the first
fatal error moves the run to `Failed`, and the database service is stopped exactly
once on every exit path, including interrupts.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from ..capabilities import (
    BuildTool,
    DatabaseService,
    HttpFetch,
    ModelGeneratorTool,
    SchemaExtractionTool,
)
from ..context import ArtifactLayout, BuildContext
from ..errors import BackupSourceError, PipelineError
from ..messages import ERROR, INFO, WARN
from .artifacts import ArtifactDescriptor, ArtifactKind, build_artifacts
from .manifest import write_manifest
from .model import (
    generate_model,
    resolve_generator_config,
    scaffold_model_project,
    write_generator_config,
)
from .readiness import wait_until_ready
from .renaming import RENAMING_FILE_NAME, generate_schema_renaming
from .restore import RestoreSpec, resolve_logical_names, restore
from .schema import extract_schema, scaffold_sql_project
from .state import RunState, Stage


READINESS_QUERY: str = "SELECT 1"


@dataclass(frozen=True)
class Toolchain:
    """The external collaborators used by a pipeline run."""
    database: DatabaseService
    extractor: SchemaExtractionTool
    builder: BuildTool
    generator: ModelGeneratorTool
    fetch: HttpFetch


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Pipeline:
    """Runs the build stages in order against a toolchain.

    Attributes
    ----------
    ctx : BuildContext
        The run configuration.  Shared read-only with every stage.
    tools : Toolchain
        The collaborators to drive.
    sleep : Callable[[float], None], optional
        Used between readiness probes.  Replaceable for testing.
    clock : Callable[[], datetime], optional
        Supplies the manifest timestamp.  Replaceable for testing.
    """
    ctx: BuildContext
    tools: Toolchain
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False)

    def _steps(self) -> list[tuple[Stage, Callable[[RunState], None]]]:
        return [
            (Stage.STARTING, self._start),
            (Stage.AWAITING_READINESS, self._await_readiness),
            (Stage.RESTORING, self._restore),
            (Stage.EXTRACTING_SCHEMA, self._extract_schema),
            (Stage.BUILDING, self._build),
            (Stage.GENERATING_MODEL, self._generate_model),
            (Stage.WRITING_MANIFEST, self._write_manifest),
        ]

    def run(self) -> RunState:
        """Execute every stage and stop the database service.

        Returns
        -------
        RunState
            The record of the run.  `state.stage` is `Stage.DONE` on success and
            `Stage.FAILED` otherwise, in which case `state.failed_stage` and
            `state.error` describe the first fatal error.

        Raises
        ------
        KeyboardInterrupt, SystemExit
            Re-raised after the run has been marked failed and the service stopped.
        """
        state = RunState(ctx=self.ctx, layout=ArtifactLayout.of(self.ctx))
        INFO(
            f"building [{self.ctx.database_name}] version {self.ctx.version} "
            f"into {state.layout.root}"
        )
        try:
            for stage, step in self._steps():
                if state.stage is not stage:
                    state.enter(stage)
                step(state)
        except Exception as err:  # pylint: disable=broad-except
            self._fail(state, err)
        except BaseException as err:
            self._fail(state, err)
            raise
        finally:
            self._stop(state)
            self._finish(state)
        return state

    def _fail(self, state: RunState, err: BaseException) -> None:
        if isinstance(err, PipelineError) and not err.stage:
            err.stage = str(state.stage)
        state.failed_stage = state.stage
        state.error = err

    def _stop(self, state: RunState) -> None:
        state.enter(Stage.STOPPING)
        INFO("stopping database service...")
        state.stop_calls += 1
        try:
            self.tools.database.stop(self.ctx.shutdown_grace)
        except Exception as err:  # pylint: disable=broad-except
            message = f"failed to stop database service: {err}"
            WARN(message)
            state.warn(message)

    def _finish(self, state: RunState) -> None:
        if state.failed_stage is None:
            state.enter(Stage.DONE)
            INFO("build complete")
            return
        state.enter(Stage.FAILED)
        err = state.error
        if isinstance(err, PipelineError):
            detail = err.message
            if err.output:
                detail = f"{detail}\n\n{err.output.strip()}"
        else:
            detail = f"{type(err).__name__}: {err}"
        ERROR(f"pipeline failed during {state.failed_stage}: {detail}")

    def _start(self, state: RunState) -> None:
        ctx = self.ctx
        local = ctx.local_backup()
        if local is not None:
            INFO(f"using local backup: {local}")
            state.backup_file = local
        elif ctx.backup_url:
            target = ctx.download_target()
            if ctx.backup_file is not None:
                WARN(f"local backup not found ({ctx.backup_file}); falling back to URL")
            INFO(f"downloading backup from {ctx.backup_url} to {target}...")
            try:
                state.backup_file = self.tools.fetch.download(ctx.backup_url, target)
            except OSError as err:
                raise BackupSourceError(
                    f"failed to download backup from {ctx.backup_url}: {err}"
                ) from err
        elif ctx.backup_file is not None:
            raise BackupSourceError(f"backup file not found: {ctx.backup_file}")
        else:
            raise BackupSourceError("no backup source given; set a backup file or URL")

        INFO("starting database service...")
        try:
            self.tools.database.start()
        except OSError as err:
            raise PipelineError(f"failed to start database service: {err}") from err

    def _await_readiness(self, state: RunState) -> None:
        database = self.tools.database
        wait_until_ready(
            lambda: database.probe(READINESS_QUERY),
            max_attempts=self.ctx.readiness_attempts,
            interval=self.ctx.readiness_interval,
            sleep=self.sleep,
        )

    def _restore(self, state: RunState) -> None:
        assert state.backup_file is not None
        database = self.tools.database
        names = resolve_logical_names(database, state.backup_file)
        spec = RestoreSpec(
            database_name=self.ctx.database_name,
            backup_file=state.backup_file,
            data_logical_name=names.data,
            log_logical_name=names.log,
            data_file_target=state.layout.data_file,
            log_file_target=state.layout.log_file,
        )
        state.restore_outcome = restore(database, spec)

    def _extract_schema(self, state: RunState) -> None:
        state.sql_project = scaffold_sql_project(
            self.tools.builder,
            state.layout,
            self.ctx.database_name,
        )
        state.record(extract_schema(
            self.tools.extractor,
            self.ctx.connection(),
            state.layout,
            state.sql_project.project_file,
        ))

    def _build(self, state: RunState) -> None:
        assert state.sql_project is not None
        outputs = build_artifacts(
            self.tools.builder,
            state.layout,
            state.sql_project.project_file,
            self.ctx.version,
        )
        state.record(outputs.binary)
        state.record(outputs.package)
        state.warnings.extend(outputs.warnings)

    def _generate_model(self, state: RunState) -> None:
        binary = state.find(ArtifactKind.COMPILED_PACKAGE)
        if binary is None:
            message = "skipping model generation; compiled schema is not available"
            WARN(message)
            state.warn(message)
            return

        ctx = self.ctx
        layout = state.layout
        project_file = scaffold_model_project(
            self.tools.builder,
            layout,
            ctx.model_framework_version,
            solution=state.sql_project.solution if state.sql_project else None,
        )
        state.model_project = project_file
        config = write_generator_config(
            resolve_generator_config(ctx, self.tools.fetch),
            layout.model_dir,
        )
        state.record(config)

        state.schemas = generate_schema_renaming(
            self.tools.database,
            ctx.database_name,
            layout.model_dir,
        )
        state.record(ArtifactDescriptor(
            kind=ArtifactKind.CONFIG_DOCUMENT,
            name=RENAMING_FILE_NAME,
            versioned_file_name=RENAMING_FILE_NAME,
            path=layout.model_dir / RENAMING_FILE_NAME,
        ))

        package = generate_model(
            self.tools.generator,
            self.tools.builder,
            layout,
            binary.path,
            config.path,
            project_file,
            ctx.version,
        )
        if package is None:
            state.warn(f"model package for {project_file.stem} is missing")
        state.record(package)

    def _write_manifest(self, state: RunState) -> None:
        state.manifest_path = write_manifest(state, now=self.clock())
