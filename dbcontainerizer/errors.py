"""Exception types raised by pipeline stages and handled by the pipeline driver.

Every fatal condition is a `PipelineError` carrying the name of the stage that
raised it and whatever output the failing tool produced, so that the failure can be
reproduced from the log alone.  Non-fatal conditions are never raised; they are
printed as warnings and recorded on the run state instead.
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for fatal, pipeline-aborting errors.

    Parameters
    ----------
    message : str
        A description of what went wrong.
    stage : str, optional
        The name of the pipeline stage that failed.  The driver fills this in if the
        raising code does not.
    output : str, optional
        Captured output from the external tool involved in the failure, if any.
    """

    def __init__(self, message: str, *, stage: str = "", output: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.output = output

    def __str__(self) -> str:
        out = self.message
        if self.stage:
            out = f"[{self.stage}] {out}"
        if self.output:
            out = f"{out}\n\n{self.output.strip()}"
        return out


class ConfigError(ValueError):
    """Invalid invocation parameters, detected before the pipeline starts."""


class BackupSourceError(PipelineError):
    """Neither a usable local backup file nor a downloadable backup URL was given."""


class ReadinessTimeout(PipelineError, TimeoutError):
    """The database service did not answer its readiness probe in time."""


class ResolutionError(PipelineError):
    """The logical data/log file names could not be read from a backup."""


class RestoreError(PipelineError):
    """The restore statement was rejected by the database service."""


class ExtractionError(PipelineError):
    """The schema extraction tool failed or produced nothing."""


class BuildError(PipelineError):
    """The build or packaging tool exited with an error."""


class GenerationError(PipelineError):
    """The model generator failed, or its configuration could not be resolved."""
