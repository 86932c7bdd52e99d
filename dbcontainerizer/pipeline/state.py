"""Stages of the build state machine and the record of a single run."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..context import ArtifactLayout, BuildContext
from .artifacts import ArtifactDescriptor, ArtifactKind
from .renaming import SchemaNameSet
from .restore import RestoreOutcome
from .schema import SqlProject


class Stage(Enum):
    """States of the pipeline driver.  `DONE` and `FAILED` are terminal."""
    STARTING = "Starting"
    AWAITING_READINESS = "AwaitingReadiness"
    RESTORING = "Restoring"
    EXTRACTING_SCHEMA = "ExtractingSchema"
    BUILDING = "Building"
    GENERATING_MODEL = "GeneratingModel"
    WRITING_MANIFEST = "WritingManifest"
    STOPPING = "Stopping"
    DONE = "Done"
    FAILED = "Failed"

    def __str__(self) -> str:
        return self.value

    @property
    def terminal(self) -> bool:
        """
        Returns
        -------
        bool
            True for `DONE` and `FAILED`.
        """
        return self in (Stage.DONE, Stage.FAILED)


@dataclass
class RunState:
    """Everything recorded during one run of the pipeline.  Owned and mutated only by
    the driver; stages receive the pieces they need as arguments.
    """
    ctx: BuildContext
    layout: ArtifactLayout
    stage: Stage = Stage.STARTING
    history: list[Stage] = field(default_factory=lambda: [Stage.STARTING])
    backup_file: Path | None = None
    restore_outcome: RestoreOutcome | None = None
    sql_project: SqlProject | None = None
    model_project: Path | None = None
    artifacts: list[ArtifactDescriptor] = field(default_factory=list)
    schemas: SchemaNameSet | None = None
    warnings: list[str] = field(default_factory=list)
    failed_stage: Stage | None = None
    error: BaseException | None = None
    manifest_path: Path | None = None
    stop_calls: int = 0

    def enter(self, stage: Stage) -> None:
        """Record a transition into `stage`."""
        self.stage = stage
        self.history.append(stage)

    def record(self, artifact: ArtifactDescriptor | None) -> None:
        """Append an artifact descriptor, ignoring None."""
        if artifact is not None:
            self.artifacts.append(artifact)

    def warn(self, message: str) -> None:
        """Record a non-fatal condition."""
        self.warnings.append(message)

    def find(self, kind: ArtifactKind) -> ArtifactDescriptor | None:
        """
        Parameters
        ----------
        kind : ArtifactKind
            The artifact kind to look up.

        Returns
        -------
        ArtifactDescriptor | None
            The first artifact of this kind, or None if none was produced.
        """
        for artifact in self.artifacts:
            if artifact.kind is kind:
                return artifact
        return None

    @property
    def succeeded(self) -> bool:
        """
        Returns
        -------
        bool
            True if the run reached `DONE`.
        """
        return self.stage is Stage.DONE
