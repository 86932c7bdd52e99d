"""Restore a database backup into a throwaway SQL Server instance and turn it into
versioned build artifacts: a schema project, a compiled schema package, a generated
EF Core model package, and a manifest describing all of them.
"""
from .context import ArtifactLayout, BuildContext, load_context
from .errors import ConfigError, PipelineError
from .pipeline import Pipeline, RunState, Stage, Toolchain
