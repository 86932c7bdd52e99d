"""Run the database build pipeline from the command line."""
from __future__ import annotations

import argparse
import os
import signal
import sys
from pathlib import Path
from types import FrameType
from typing import Any

from .context import DEFAULT_SECRET_FILE, BuildContext, load_context
from .errors import ConfigError
from .messages import FAIL, INFO
from .pipeline import Pipeline, Toolchain
from .run import CommandError
from .tools import DotNet, EfCorePowerTools, SqlPackage, SqlServer, UrlFetch
from .version import load_version


# command-line option -> context field
OPTIONS: dict[str, str] = {
    "database_name": "database_name",
    "artifact_version": "version",
    "database_backup_file": "backup_file",
    "database_backup_url": "backup_url",
    "efcpt_version": "generator_version",
    "efcore_version": "model_framework_version",
    "efcpt_config_file": "generator_config_file",
    "efcpt_config_url": "generator_config_url",
    "exclude_procedure": "excluded_procedures",
    "sa_password": "password",
    "image_repository": "image_repository",
    "commit_sha": "commit_sha",
    "use_insecure_ssl": "insecure",
    "artifacts_root": "output_root",
}


def _version() -> str:
    try:
        return load_version()
    except OSError:
        return "unknown"


class Parser:
    """Command-line parser for the database containerizer."""

    def __init__(self) -> None:
        self.root = argparse.ArgumentParser(
            prog="dbcontainerizer",
            description=(
                "Restore a SQL Server backup and turn it into versioned schema and "
                "model packages."
            ),
        )
        self.commands = self.root.add_subparsers(
            dest="command",
            title="commands",
            metavar="(command)",
        )
        self.version()
        self.build()

    def version(self) -> None:
        """Add the 'version' query to the parser."""
        self.root.add_argument("-v", "--version", action="version", version=_version())

    def build(self) -> None:
        """Add the 'build' command to the parser."""
        command = self.commands.add_parser(
            "build",
            help=(
                "Start a local SQL Server, restore the database backup into it, and "
                "produce a schema project, a versioned dacpac, a schema package, an "
                "EF Core model package and a manifest under the artifacts root.  "
                "Every option can also be given through the matching upper-case "
                "environment variable (e.g. DATABASE_NAME) or a [build] table in a "
                "TOML config file."
            ),
        )
        command.add_argument(
            "--database_name",
            help="The name of the database to restore and model.  Required.",
        )
        command.add_argument(
            "--version",
            dest="artifact_version",
            help="The version stamped into every artifact.  Defaults to 1.0.0.",
        )
        command.add_argument(
            "--database_backup_file",
            help=(
                "A local backup file.  Relative paths are resolved against the "
                "backup directory.  Preferred over --database_backup_url when the "
                "file exists."
            ),
        )
        command.add_argument(
            "--database_backup_url",
            help="A URL to download the backup from when no local file is usable.",
        )
        command.add_argument(
            "--efcpt_version",
            help="The EF Core Power Tools CLI version to install if missing.",
        )
        command.add_argument(
            "--efcore_version",
            help="The version of the EF Core packages added to the model project.",
        )
        command.add_argument(
            "--efcpt_config_file",
            help="A local efcpt-config.json to use instead of the default template.",
        )
        command.add_argument(
            "--efcpt_config_url",
            help="A URL to download efcpt-config.json from.",
        )
        command.add_argument(
            "--exclude_procedure",
            action="append",
            default=[],
            help=(
                "A stored procedure to exclude from model generation.  May be given "
                "more than once.  Only applies to the default config template."
            ),
        )
        command.add_argument(
            "--sa_password",
            help=(
                "The SQL Server login password.  Prefer --sa_password_file, which "
                "overrides this when the file exists."
            ),
        )
        command.add_argument(
            "--sa_password_file",
            type=Path,
            default=DEFAULT_SECRET_FILE,
            help=f"A file holding the login password (default: {DEFAULT_SECRET_FILE}).",
        )
        command.add_argument(
            "--image_repository",
            help="The container image repository recorded in the manifest.",
        )
        command.add_argument(
            "--commit_sha",
            help="The source commit recorded in the manifest.",
        )
        command.add_argument(
            "--use_insecure_ssl",
            metavar="{yes,no}",
            help="Skip certificate validation for downloads.",
        )
        command.add_argument(
            "--artifacts_root",
            help="The directory all build outputs are written to.",
        )
        command.add_argument(
            "--config",
            type=Path,
            help="A TOML file whose [build] table provides defaults for any option.",
        )

    def __call__(self, argv: list[str] | None = None) -> argparse.Namespace:
        """Parse command-line arguments.

        Parameters
        ----------
        argv : list[str] | None
            Command-line arguments.  Defaults to None, which means to use sys.argv.

        Returns
        -------
        argparse.Namespace
            The parsed arguments.
        """
        return self.root.parse_args(argv)


def options(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed arguments into context fields.

    Parameters
    ----------
    args : argparse.Namespace
        The parsed arguments of the 'build' command.

    Returns
    -------
    dict[str, Any]
        Context field values keyed by field name.  Unset options map to None.
    """
    return {field: getattr(args, dest, None) for dest, field in OPTIONS.items()}


def toolchain(ctx: BuildContext) -> Toolchain:
    """Wire the concrete collaborators for a build context.

    Parameters
    ----------
    ctx : BuildContext
        The run configuration.

    Returns
    -------
    Toolchain
        Subprocess- and network-backed implementations of every capability.
    """
    generator = EfCorePowerTools()
    generator.ensure(ctx.generator_version)
    return Toolchain(
        database=SqlServer(ctx.connection()),
        extractor=SqlPackage(),
        builder=DotNet(),
        generator=generator,
        fetch=UrlFetch(insecure=ctx.insecure),
    )


def _terminate(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


def main(argv: list[str] | None = None) -> int:
    """Run the database containerizer as a command-line utility.

    Returns
    -------
    int
        0 if the pipeline reached `Done`, 1 if it failed, 2 for invalid
        configuration.
    """
    parser = Parser()
    args = parser(argv)
    if args.command != "build":
        parser.root.print_help()
        return 2

    try:
        ctx = load_context(
            options=options(args),
            environ=os.environ,
            config_file=args.config,
            secret_file=args.sa_password_file,
        )
    except ConfigError as err:
        FAIL(str(err), code=2)

    try:
        tools = toolchain(ctx)
    except (CommandError, OSError) as err:
        FAIL(f"failed to provision the model generator\n\n{err}")

    # SIGTERM unwinds through the pipeline so the database service is still stopped
    previous = signal.signal(signal.SIGTERM, _terminate)
    try:
        state = Pipeline(ctx, tools).run()
    finally:
        signal.signal(signal.SIGTERM, previous)

    if state.warnings:
        INFO(f"finished with {len(state.warnings)} warning(s)")
    return 0 if state.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
