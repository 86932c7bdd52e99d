"""Schema extraction through the standalone `sqlpackage` tool."""
from __future__ import annotations

from pathlib import Path

from ..capabilities import ConnectionInfo
from ..run import run


class SqlPackage:
    """Runs `sqlpackage /a:Extract` with one output file per schema object."""

    def __init__(self, executable: str = "sqlpackage") -> None:
        self.executable = executable

    def extract(self, connection: ConnectionInfo, target_dir: Path) -> list[Path]:
        run(
            [
                self.executable,
                "/a:Extract",
                f"/SourceConnectionString:{connection.connection_string()}",
                f"/tf:{target_dir}",
                "/p:ExtractTarget=SchemaObjectType",
            ],
            capture_output=None,
            secrets=[connection.password],
        )
        if not target_dir.is_dir():
            return []
        return sorted(p for p in target_dir.rglob("*") if p.is_file())
