"""Model generation with the EF Core Power Tools command-line tool."""
from __future__ import annotations

import os
import shutil
from pathlib import Path

from ..messages import INFO
from ..run import run


TOOL_PACKAGE: str = "ErikEJ.EFCorePowerTools.Cli"
PROVIDER: str = "mssql"
IGNORED_DIRS: frozenset[str] = frozenset({"bin", "obj"})


class EfCorePowerTools:
    """Runs `efcpt <dacpac> mssql` in the directory holding `efcpt-config.json`."""

    def __init__(self, executable: str = "efcpt", dotnet: str = "dotnet") -> None:
        self.executable = executable
        self.dotnet = dotnet

    def ensure(self, version: str) -> None:
        """Install the generator as a global dotnet tool if it is not on PATH.

        Parameters
        ----------
        version : str
            The tool version (or wildcard) to install.

        Raises
        ------
        CommandError
            If the installation fails.
        """
        if shutil.which(self.executable):
            return
        INFO(f"installing {TOOL_PACKAGE} {version}...")
        run(
            [self.dotnet, "tool", "install", TOOL_PACKAGE, "-g", "--version", version],
            capture_output=None,
        )

        # global tools land here, which is not always on PATH in a fresh container
        tools = Path.home() / ".dotnet" / "tools"
        if shutil.which(self.executable) is None and (tools / self.executable).exists():
            self.executable = str(tools / self.executable)

    def generate(self, binary_path: Path, config_path: Path) -> list[Path]:
        project_dir = config_path.parent
        run(
            [self.executable, str(binary_path), PROVIDER],
            capture_output=None,
            cwd=project_dir,
        )
        out: list[Path] = []
        for root, dirs, files in os.walk(project_dir):
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
            out.extend(Path(root) / f for f in sorted(files) if f.endswith(".cs"))
        return out
