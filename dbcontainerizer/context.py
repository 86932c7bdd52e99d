"""Configuration for a single build run, and the output layout derived from it.

A `BuildContext` is assembled once, before the pipeline starts, from (lowest priority
first) an optional TOML file, environment variables, and command-line options.  It is
immutable afterwards and passed by reference to every stage.
"""
from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)

from .capabilities import ConnectionInfo
from .errors import ConfigError


DEFAULT_OUTPUT_ROOT: Path = Path("/artifacts")
DEFAULT_BACKUP_DIR: Path = Path("/var/opt/mssql/backup")
DEFAULT_DATA_DIR: Path = Path("/var/opt/mssql/data")
DEFAULT_SECRET_FILE: Path = Path("/run/secrets/sa_password")
MODEL_PROJECT_SUFFIX: str = "EntityFrameworkCore"
STAGING_DIR_NAME: str = "SchemaTmp"
DIST_DIR_NAME: str = "dist"
MANIFEST_NAME: str = "manifest.json"


# environment variable -> context field; names match the container build arguments
ENV_VARS: dict[str, str] = {
    "DATABASE_NAME": "database_name",
    "DATABASE_BACKUP_FILE": "backup_file",
    "DATABASE_BACKUP_URL": "backup_url",
    "VERSION": "version",
    "EFCPT_VERSION": "generator_version",
    "EFCORE_VERSION": "model_framework_version",
    "EFCPT_CONFIG_FILE": "generator_config_file",
    "EFCPT_CONFIG_URL": "generator_config_url",
    "IMAGE_REPOSITORY": "image_repository",
    "COMMIT_SHA": "commit_sha",
    "USE_INSECURE_SSL": "insecure",
    "ARTIFACTS_ROOT": "output_root",
    "MSSQL_SA_PASSWORD": "password",
}


class BuildContext(BaseModel):
    """Process-wide configuration for one pipeline run."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    database_name: str = Field(description="Name of the database to restore and model.")
    backup_file: Path | None = Field(
        default=None,
        description=
            "Local backup file.  Relative paths are resolved against `backup_dir`.  "
            "Takes priority over `backup_url` when it names an existing file.",
    )
    backup_url: str | None = Field(
        default=None,
        description="Remote backup location, downloaded when no local file is usable.",
    )
    backup_dir: Path = Field(default=DEFAULT_BACKUP_DIR)
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)
    output_root: Path = Field(default=DEFAULT_OUTPUT_ROOT)
    version: str = Field(default="1.0.0", description="Version stamped into all artifacts.")
    generator_version: str = Field(default="10.*")
    model_framework_version: str = Field(default="10.0.0")
    generator_config_file: Path | None = Field(default=None)
    generator_config_url: str | None = Field(default=None)
    excluded_procedures: tuple[str, ...] = Field(default=())
    password: SecretStr = Field(description="Login password for the database service.")
    image_repository: str = Field(default="unknown")
    commit_sha: str = Field(default="unknown")
    insecure: bool = Field(
        default=False,
        description="Skip certificate validation for outbound downloads.",
    )
    server: str = Field(default="localhost")
    user: str = Field(default="sa")
    readiness_attempts: PositiveInt = Field(default=60)
    readiness_interval: NonNegativeFloat = Field(default=2.0)
    shutdown_grace: NonNegativeFloat = Field(default=30.0)

    @field_validator(
        "backup_file",
        "backup_url",
        "generator_config_file",
        "generator_config_url",
        mode="before",
    )
    @classmethod
    def _empty_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("database_name")
    @classmethod
    def _validate_database_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("database name must be non-empty")
        if any(c in text for c in ("/", "\\", "\0")):
            raise ValueError(f"database name must not contain path separators: {text!r}")
        return text

    @field_validator("version", "image_repository", "commit_sha")
    @classmethod
    def _validate_non_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("value must be non-empty")
        return text

    @field_validator("excluded_procedures", mode="before")
    @classmethod
    def _split_procedures(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(p.strip() for p in value.split(";") if p.strip())
        return value

    def local_backup(self) -> Path | None:
        """Find the configured local backup file, if it exists.

        Returns
        -------
        Path | None
            The absolute path to the backup, or None if no local file is configured
            or the configured path is not an existing file.
        """
        if self.backup_file is None:
            return None
        path = self.backup_file
        if not path.is_absolute():
            path = self.backup_dir / path
        return path if path.is_file() else None

    def download_target(self) -> Path:
        """
        Returns
        -------
        Path
            Where a remote backup is stored once downloaded.
        """
        return self.backup_dir / f"{self.database_name}.bak"

    def connection(self, database: str | None = None) -> ConnectionInfo:
        """
        Parameters
        ----------
        database : str | None, optional
            The database to connect to.  Defaults to `database_name`.

        Returns
        -------
        ConnectionInfo
            Connection details for the running service.
        """
        return ConnectionInfo(
            server=self.server,
            database=database or self.database_name,
            user=self.user,
            password=self.password.get_secret_value(),
        )


@dataclass(frozen=True)
class ArtifactLayout:
    """Filesystem locations of everything a run produces."""
    root: Path
    project_dir: Path
    staging_dir: Path
    dist_dir: Path
    model_project_name: str
    model_dir: Path
    manifest_path: Path
    data_file: Path
    log_file: Path

    @classmethod
    def of(cls, ctx: BuildContext) -> ArtifactLayout:
        """Derive the layout for a build context.

        Parameters
        ----------
        ctx : BuildContext
            The run configuration.

        Returns
        -------
        ArtifactLayout
            Paths rooted at `ctx.output_root` and `ctx.data_dir`.
        """
        name = ctx.database_name
        root = ctx.output_root
        project_dir = root / name
        dist_dir = root / DIST_DIR_NAME
        model_project_name = f"{name}.{MODEL_PROJECT_SUFFIX}"
        return cls(
            root=root,
            project_dir=project_dir,
            staging_dir=project_dir / STAGING_DIR_NAME,
            dist_dir=dist_dir,
            model_project_name=model_project_name,
            model_dir=root / model_project_name,
            manifest_path=dist_dir / MANIFEST_NAME,
            data_file=ctx.data_dir / f"{name}.mdf",
            log_file=ctx.data_dir / f"{name}_log.ldf",
        )


def resolve_credential(secret_file: Path | None, plaintext: str | None) -> SecretStr:
    """Pick the database password, preferring a mounted secret over a plain value.

    Parameters
    ----------
    secret_file : Path | None
        A file provided through a secret channel.  Used when it exists and is
        non-empty after stripping whitespace.
    plaintext : str | None
        A fallback value from the command line, environment, or config file.

    Returns
    -------
    SecretStr
        The selected password.

    Raises
    ------
    ConfigError
        If neither source provides a value.
    """
    if secret_file is not None and secret_file.is_file():
        try:
            text = secret_file.read_text(encoding="utf-8").strip()
        except OSError as err:
            raise ConfigError(f"could not read secret file {secret_file}: {err}") from err
        if text:
            return SecretStr(text)
    if plaintext:
        return SecretStr(plaintext)
    raise ConfigError(
        "no database password given; mount a secret or set MSSQL_SA_PASSWORD"
    )


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as err:
        raise ConfigError(f"config file not found: {path}") from err
    except (OSError, tomllib.TOMLDecodeError) as err:
        raise ConfigError(f"invalid config file {path}: {err}") from err
    table = data.get("build", {})
    if not isinstance(table, dict):
        raise ConfigError(f"[build] must be a table in config file: {path}")
    return dict(table)


def _is_set(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple)) and not value:
        return False
    return True


def load_context(
    *,
    options: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_file: Path | None = None,
    secret_file: Path | None = DEFAULT_SECRET_FILE,
) -> BuildContext:
    """Assemble a `BuildContext` from all configuration layers.

    Parameters
    ----------
    options : Mapping[str, Any] | None, optional
        Values from the command line, keyed by context field name.  Unset values
        (None, empty strings, empty lists) are ignored.  Highest priority.
    environ : Mapping[str, str] | None, optional
        Environment variables, translated through `ENV_VARS`.
    config_file : Path | None, optional
        A TOML file whose `[build]` table holds context fields.  Lowest priority.
    secret_file : Path | None, optional
        A secret-channel file holding the password, which overrides any plaintext
        password from the other layers.

    Returns
    -------
    BuildContext
        The validated configuration.

    Raises
    ------
    ConfigError
        If the config file cannot be read, no password is available, or any value
        fails validation.
    """
    merged: dict[str, Any] = {}
    if config_file is not None:
        merged.update(_read_config_file(config_file))
    for key, name in ENV_VARS.items():
        value = (environ or {}).get(key)
        if _is_set(value):
            merged[name] = value
    for name, value in (options or {}).items():
        if _is_set(value):
            merged[name] = value

    plaintext = merged.pop("password", None)
    merged["password"] = resolve_credential(
        secret_file,
        str(plaintext) if plaintext is not None else None,
    )
    try:
        return BuildContext(**merged)
    except ValidationError as err:
        raise ConfigError(f"invalid build configuration:\n{err}") from err
