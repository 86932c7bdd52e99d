from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from dbcontainerizer.context import (
    ArtifactLayout,
    BuildContext,
    load_context,
    resolve_credential,
)
from dbcontainerizer.errors import ConfigError

from tests.fakes import PASSWORD, make_context


############################
####    CREDENTIALS     ####
############################


def test_secret_file_wins(tmp_path: Path) -> None:
    secret = tmp_path / "sa_password"
    secret.write_text("  from-file\n")
    assert resolve_credential(secret, "plain").get_secret_value() == "from-file"


def test_empty_secret_file_falls_back(tmp_path: Path) -> None:
    secret = tmp_path / "sa_password"
    secret.write_text("\n")
    assert resolve_credential(secret, "plain").get_secret_value() == "plain"
    assert resolve_credential(tmp_path / "missing", "plain").get_secret_value() == "plain"


def test_no_credential_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        resolve_credential(tmp_path / "missing", None)
    with pytest.raises(ConfigError):
        resolve_credential(None, "")


#########################
####    LAYERING     ####
#########################


def test_defaults(tmp_path: Path) -> None:
    ctx = load_context(
        environ={"DATABASE_NAME": "Sales", "MSSQL_SA_PASSWORD": PASSWORD},
        secret_file=tmp_path / "missing",
    )
    assert ctx.version == "1.0.0"
    assert ctx.generator_version == "10.*"
    assert ctx.model_framework_version == "10.0.0"
    assert ctx.image_repository == "unknown"
    assert ctx.commit_sha == "unknown"
    assert ctx.output_root == Path("/artifacts")
    assert ctx.insecure is False
    assert ctx.excluded_procedures == ()


def test_options_override_environment_override_file(tmp_path: Path) -> None:
    config = tmp_path / "build.toml"
    config.write_text(
        '[build]\n'
        'database_name = "FromFile"\n'
        'version = "0.1.0"\n'
        'commit_sha = "file-sha"\n'
        'image_repository = "file/repo"\n'
    )
    ctx = load_context(
        options={"version": "3.0.0", "commit_sha": None},
        environ={"VERSION": "2.0.0", "COMMIT_SHA": "env-sha", "MSSQL_SA_PASSWORD": PASSWORD},
        config_file=config,
        secret_file=None,
    )
    assert ctx.database_name == "FromFile"
    assert ctx.version == "3.0.0"
    assert ctx.commit_sha == "env-sha"
    assert ctx.image_repository == "file/repo"


def test_empty_values_are_unset(tmp_path: Path) -> None:
    ctx = load_context(
        options={"backup_url": "", "excluded_procedures": []},
        environ={
            "DATABASE_NAME": "Sales",
            "DATABASE_BACKUP_URL": "",
            "EFCPT_CONFIG_FILE": "",
            "MSSQL_SA_PASSWORD": PASSWORD,
        },
        secret_file=None,
    )
    assert ctx.backup_url is None
    assert ctx.generator_config_file is None


@pytest.mark.parametrize("text, expected", [("yes", True), ("no", False), ("true", True)])
def test_insecure_flag(text: str, expected: bool) -> None:
    ctx = load_context(
        environ={"DATABASE_NAME": "Sales", "USE_INSECURE_SSL": text, "MSSQL_SA_PASSWORD": "x"},
        secret_file=None,
    )
    assert ctx.insecure is expected


def test_excluded_procedures_from_string() -> None:
    ctx = load_context(
        options={
            "database_name": "Sales",
            "excluded_procedures": "[dbo].[A]; [dbo].[B];",
            "password": "x",
        },
        secret_file=None,
    )
    assert ctx.excluded_procedures == ("[dbo].[A]", "[dbo].[B]")


@pytest.mark.parametrize("name", ["", "   ", "a/b", "a\\b"])
def test_invalid_database_name(name: str) -> None:
    with pytest.raises(ConfigError):
        load_context(options={"database_name": name, "password": "x"}, secret_file=None)


def test_missing_database_name() -> None:
    with pytest.raises(ConfigError):
        load_context(options={"password": "x"}, secret_file=None)


def test_unknown_config_key(tmp_path: Path) -> None:
    config = tmp_path / "build.toml"
    config.write_text('[build]\ndatabase_name = "Sales"\ncolour = "blue"\n')
    with pytest.raises(ConfigError):
        load_context(options={"password": "x"}, config_file=config, secret_file=None)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_context(options={"password": "x"}, config_file=tmp_path / "nope.toml")


def test_context_is_frozen(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    with pytest.raises(ValidationError):
        ctx.version = "9.9.9"  # type: ignore[misc]


##########################
####    DERIVED        ####
##########################


def test_local_backup_resolution(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    assert ctx.local_backup() == tmp_path / "backup" / "Sales.bak"
    assert make_context(tmp_path, backup_file="Missing.bak").local_backup() is None
    assert make_context(tmp_path, backup_file=None).local_backup() is None
    absolute = tmp_path / "elsewhere.bak"
    absolute.write_bytes(b"x")
    assert make_context(tmp_path, backup_file=absolute).local_backup() == absolute


def test_download_target(tmp_path: Path) -> None:
    assert make_context(tmp_path).download_target() == tmp_path / "backup" / "Sales.bak"


def test_connection_hides_password(tmp_path: Path) -> None:
    connection = make_context(tmp_path).connection()
    assert PASSWORD not in repr(connection)
    assert connection.connection_string() == (
        f"Server=localhost;Database=Sales;User ID=sa;Password={PASSWORD};"
        "Encrypt=False;TrustServerCertificate=True"
    )
    assert make_context(tmp_path).connection("master").database == "master"


def test_layout(tmp_path: Path) -> None:
    layout = ArtifactLayout.of(make_context(tmp_path))
    root = tmp_path / "artifacts"
    assert layout.project_dir == root / "Sales"
    assert layout.staging_dir == root / "Sales" / "SchemaTmp"
    assert layout.dist_dir == root / "dist"
    assert layout.model_project_name == "Sales.EntityFrameworkCore"
    assert layout.model_dir == root / "Sales.EntityFrameworkCore"
    assert layout.manifest_path == root / "dist" / "manifest.json"
    assert layout.data_file == tmp_path / "data" / "Sales.mdf"
    assert layout.log_file == tmp_path / "data" / "Sales_log.ldf"


def test_build_context_rejects_extra_fields() -> None:
    with pytest.raises(ValidationError):
        BuildContext(database_name="Sales", password="x", colour="blue")
