"""Interfaces for the external collaborators driven by the build pipeline.

The pipeline never invokes a database engine, schema extraction tool, build tool,
model generator or HTTP client directly.  It is written against the protocols in
this module, which are implemented by the subprocess-backed adapters in
`dbcontainerizer.tools` and by in-memory fakes in the test-suite.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol, TypeAlias


Row: TypeAlias = tuple[str, ...]
ProjectTemplate: TypeAlias = Literal["sqlproj", "classlib"]


@dataclass(frozen=True)
class ProbeResult:
    """The outcome of a single readiness probe.

    Attributes
    ----------
    ok : bool
        True if the service answered the probe successfully.
    output : str
        Diagnostic output (stdout/stderr) captured from the probe, if any.
    """
    ok: bool
    output: str = ""


@dataclass(frozen=True)
class ConnectionInfo:
    """Everything needed to connect to one database on the running service.

    Attributes
    ----------
    server : str
        The host name of the database service.
    database : str
        The database to connect to.
    user : str
        The login name.
    password : str
        The login password.  Excluded from `repr()`.
    """
    server: str
    database: str
    user: str
    password: str = field(repr=False)

    def connection_string(self) -> str:
        """Render a connection string with transport encryption relaxed for a local,
        build-time service.

        Returns
        -------
        str
            A `key=value;...` connection string.
        """
        return (
            f"Server={self.server};Database={self.database};User ID={self.user};"
            f"Password={self.password};Encrypt=False;TrustServerCertificate=True"
        )


class DatabaseService(Protocol):
    """A database engine running alongside the pipeline as a background process."""

    def start(self) -> None:
        """Launch the service in the background and return immediately."""

    def probe(self, query: str) -> ProbeResult:
        """Run a trivial query and report whether the service answered."""

    def execute_query(self, sql: str, *, database: str | None = None) -> list[Row]:
        """Execute a statement and return its result rows as tuples of strings.

        Raises
        ------
        CommandError
            If the service rejects the statement.
        """

    def stop(self, grace: float) -> None:
        """Terminate the service, escalating to a forced kill after `grace` seconds.
        Must be a no-op if the service is not running.
        """


class SchemaExtractionTool(Protocol):
    """Decomposes a live database into a file-based project."""

    def extract(self, connection: ConnectionInfo, target_dir: Path) -> list[Path]:
        """Extract one file per schema object into `target_dir` and return the files
        that were written.

        Raises
        ------
        CommandError
            If the tool exits with an error.
        """


class BuildTool(Protocol):
    """Creates, builds and packages projects."""

    def create_solution(self, root: Path, name: str) -> Path:
        """Create an empty solution called `name` under `root` and return its path."""

    def create_project(
        self,
        template: ProjectTemplate,
        project_dir: Path,
        name: str,
        *,
        solution: Path | None = None,
    ) -> Path:
        """Create a project from `template` in `project_dir`, optionally adding it to a
        solution, and return the path to the project file.
        """

    def add_package(self, project_file: Path, package: str, version: str) -> None:
        """Add a package reference to a project."""

    def build(self, project_file: Path, version: str) -> Path:
        """Build a project, stamping `version` into every version-bearing property,
        and return the path where its primary output is expected.  The output is not
        guaranteed to exist.
        """

    def package(self, project_file: Path, version: str, out_dir: Path) -> Path:
        """Pack a project into `out_dir` with the given version, and return the path
        where the package is expected.  The package is not guaranteed to exist.
        """


class ModelGeneratorTool(Protocol):
    """Generates a code model from a compiled schema artifact."""

    def generate(self, binary_path: Path, config_path: Path) -> list[Path]:
        """Generate model sources next to `config_path` from the artifact at
        `binary_path`, and return the generated files.

        Raises
        ------
        CommandError
            If the tool exits with an error.
        """


class HttpFetch(Protocol):
    """Retrieves remote documents and files."""

    def get(self, url: str) -> bytes:
        """Fetch a URL into memory."""

    def download(self, url: str, target: Path) -> Path:
        """Stream a URL into `target`, replacing it atomically, and return the path."""
