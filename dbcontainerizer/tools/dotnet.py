"""Project scaffolding, builds and packaging through the `dotnet` CLI."""
from __future__ import annotations

from pathlib import Path

from ..capabilities import ProjectTemplate
from ..run import run


CONFIGURATION: str = "Release"
SQL_TARGET_PLATFORM: str = "Sql160"
PROJECT_SUFFIXES: dict[str, str] = {
    "sqlproj": ".sqlproj",
    "classlib": ".csproj",
}


class DotNet:
    """A `BuildTool` backed by the dotnet SDK.

    All commands tee their output to the console, so long restores and builds show
    progress as they go.
    """

    def __init__(self, executable: str = "dotnet") -> None:
        self.executable = executable

    def _run(self, *args: str, cwd: Path | None = None) -> None:
        run([self.executable, *args], capture_output=None, cwd=cwd)

    def create_solution(self, root: Path, name: str) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        self._run("new", "sln", "-n", name, "--force", cwd=root)

        # newer SDKs emit .slnx instead of .sln
        for suffix in (".sln", ".slnx"):
            candidate = root / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
        matches = sorted(root.glob(f"{name}*.sln*"))
        if not matches:
            raise FileNotFoundError(f"no solution file for {name} in {root}")
        return matches[0]

    def create_project(
        self,
        template: ProjectTemplate,
        project_dir: Path,
        name: str,
        *,
        solution: Path | None = None,
    ) -> Path:
        argv = ["new", template, "-n", name, "-o", str(project_dir), "--force"]
        if template == "sqlproj":
            argv.extend(["-tp", SQL_TARGET_PLATFORM])
        self._run(*argv)
        project_file = project_dir / f"{name}{PROJECT_SUFFIXES[template]}"
        if solution is not None:
            self._run("sln", str(solution), "add", str(project_file))
        return project_file

    def add_package(self, project_file: Path, package: str, version: str) -> None:
        self._run("add", str(project_file), "package", package, "--version", version)

    def build(self, project_file: Path, version: str) -> Path:
        argv = [
            "build", str(project_file),
            "-c", CONFIGURATION,
            f"/p:Version={version}",
        ]
        if project_file.suffix == ".sqlproj":
            argv.append(f"/p:DacVersion={version}")
        self._run(*argv)
        output_dir = project_file.parent / "bin" / CONFIGURATION
        if project_file.suffix == ".sqlproj":
            return output_dir / f"{project_file.stem}.dacpac"
        return output_dir

    def package(self, project_file: Path, version: str, out_dir: Path) -> Path:
        self._run(
            "pack", str(project_file),
            "-c", CONFIGURATION,
            "-o", str(out_dir),
            f"/p:PackageVersion={version}",
            f"/p:Version={version}",
        )
        return out_dir / f"{project_file.stem}.{version}.nupkg"
