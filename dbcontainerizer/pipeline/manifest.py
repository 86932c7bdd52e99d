"""The single structured record summarizing a run's outputs."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..messages import INFO
from ..run import atomic_write_text
from .artifacts import ArtifactKind
from .state import RunState


LATEST_TAG: str = "latest"
TIMESTAMP_FORMAT: str = "%Y-%m-%dT%H:%M:%SZ"


def format_utc(moment: datetime) -> str:
    """Render a timestamp as strict ISO-8601 UTC with second precision.

    Naive datetimes are taken to be UTC already.

    >>> format_utc(datetime(2024, 5, 1, 12, 30, 5, 999, tzinfo=timezone.utc))
    '2024-05-01T12:30:05Z'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class Manifest(BaseModel):
    """JSON manifest describing the artifacts of a run.  Artifacts that were not
    produced are recorded as empty strings.
    """
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)
    database_name: str = Field(alias="databaseName")
    version: str = Field(alias="version")
    dacpac_versioned: str = Field(default="", alias="dacpacVersioned")
    sql_project_package: str = Field(default="", alias="sqlProjectPackage")
    ef_core_package: str = Field(default="", alias="efCorePackage")
    ef_core_project_name: str = Field(default="", alias="efCoreProjectName")
    image_repository: str = Field(default="unknown", alias="imageRepository")
    image_tags: list[str] = Field(alias="imageTags")
    commit_sha: str = Field(default="unknown", alias="commitSha")
    generated_at_utc: str = Field(
        alias="generatedAtUtc",
        pattern=r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$",
    )

    @model_validator(mode="after")
    def _check_tags(self) -> Self:
        if self.image_tags != [self.version, LATEST_TAG]:
            raise ValueError(
                f"imageTags must be [{self.version!r}, {LATEST_TAG!r}], not {self.image_tags}"
            )
        return self

    @classmethod
    def from_state(cls, state: RunState, *, now: datetime | None = None) -> Manifest:
        """Aggregate whatever artifacts a run produced.

        Parameters
        ----------
        state : RunState
            The run record.
        now : datetime | None, optional
            The generation time.  Defaults to the current UTC time.

        Returns
        -------
        Manifest
            The manifest for the run.
        """
        ctx = state.ctx

        def _file(kind: ArtifactKind) -> str:
            artifact = state.find(kind)
            return artifact.versioned_file_name if artifact is not None else ""

        return cls(
            database_name=ctx.database_name,
            version=ctx.version,
            dacpac_versioned=_file(ArtifactKind.COMPILED_PACKAGE),
            sql_project_package=_file(ArtifactKind.SCHEMA_PACKAGE),
            ef_core_package=_file(ArtifactKind.GENERATED_MODEL_PACKAGE),
            ef_core_project_name=state.model_project.stem if state.model_project else "",
            image_repository=ctx.image_repository,
            image_tags=[ctx.version, LATEST_TAG],
            commit_sha=ctx.commit_sha,
            generated_at_utc=format_utc(now or datetime.now(timezone.utc)),
        )

    def render(self) -> str:
        """
        Returns
        -------
        str
            The manifest as indented JSON with camelCase keys.
        """
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2) + "\n"


def write_manifest(state: RunState, *, now: datetime | None = None) -> Path:
    """Write the manifest for a run in a single atomic replace.

    Parameters
    ----------
    state : RunState
        The run record.
    now : datetime | None, optional
        The generation time.  Defaults to the current UTC time.

    Returns
    -------
    Path
        The path of the written manifest.
    """
    path = state.layout.manifest_path
    INFO(f"writing manifest to {path}")
    atomic_write_text(path, Manifest.from_state(state, now=now).render())
    return path
