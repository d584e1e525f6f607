from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization

from tests.factories import new_public_key
from userservice.application.services.user_service import UserService
from userservice.repositories.errors import StorageError
from userservice.repositories.sqlite.users_sqlite import UsersRepoSqlite, sqlite_connector


@pytest.fixture
def cli(monkeypatch: pytest.MonkeyPatch) -> Any:
    import userservice.cli.users as users_cli

    svc = UserService(UsersRepoSqlite(sqlite_connector(":memory:")))
    monkeypatch.setattr(users_cli, "_build_service", lambda: svc)
    return users_cli


@pytest.fixture
def pem_file(tmp_path: Path) -> Path:
    key = new_public_key()
    path = tmp_path / "key.pem"
    path.write_bytes(
        key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return path


def _create_args(pem_file: Path, email: str = "jon.doe@email.com") -> list[str]:
    return [
        "create",
        "--email",
        email,
        "--name",
        "Jon Doe",
        "--public-key-file",
        str(pem_file),
        "--wrapped-private-key-hex",
        "b1b1",
        "--wrapped-master-key-hex",
        "b2b2",
    ]


def test_create_and_get(
    cli: Any, pem_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(_create_args(pem_file)) == 0
    created = json.loads(capsys.readouterr().out)
    assert created["email"] == "jon.doe@email.com"
    assert created["wrapped_private_key"] == "b1b1"

    assert cli.main(["get", "--email", "jon.doe@email.com"]) == 0
    assert json.loads(capsys.readouterr().out) == created

    assert cli.main(["get", "--public-key-file", str(pem_file)]) == 0
    assert json.loads(capsys.readouterr().out) == created

    assert cli.main(["get-pk", "--email", "jon.doe@email.com"]) == 0
    assert json.loads(capsys.readouterr().out)["public_key"] == created["public_key"]


def test_der_key_file_is_accepted(
    cli: Any, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    der = tmp_path / "key.der"
    der.write_bytes(
        new_public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    assert cli.main(_create_args(der)) == 0
    assert json.loads(capsys.readouterr().out)["public_key"] == der.read_bytes().hex()


def test_delete_then_get_fails(
    cli: Any, pem_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cli.main(_create_args(pem_file))
    assert cli.main(["delete", "--email", "jon.doe@email.com"]) == 0
    capsys.readouterr()

    assert cli.main(["get", "--email", "jon.doe@email.com"]) == 1
    err = json.loads(capsys.readouterr().err)
    assert err["status"] == "NOT_FOUND"


def test_duplicate_create_reports_conflict(
    cli: Any, pem_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cli.main(_create_args(pem_file))
    assert cli.main(_create_args(pem_file)) == 1
    assert json.loads(capsys.readouterr().err)["status"] == "ALREADY_EXISTS"


def test_bad_hex_is_rejected_before_service(
    cli: Any, pem_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    args = _create_args(pem_file)
    args[args.index("b1b1")] = "zz"
    assert cli.main(args) == 2
    assert json.loads(capsys.readouterr().err)["status"] == "INVALID_ARGUMENT"


@pytest.fixture
def real_cli(monkeypatch: pytest.MonkeyPatch) -> Any:
    import userservice.cli.users as users_cli
    import userservice.logging_config as logging_config

    monkeypatch.setattr(logging_config, "get_logger", lambda *a, **k: None)
    return users_cli


def test_missing_dsn_is_reported_as_json(
    real_cli: Any, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("DSN", raising=False)
    assert real_cli.main(["get", "--email", "a@b.c"]) == 1
    err = json.loads(capsys.readouterr().err)
    assert err["status"] == "INTERNAL"
    assert "DSN" in err["error"]


def test_storage_setup_failure_is_reported_as_json(
    real_cli: Any, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    import userservice.repositories.factory as factory

    def unreachable(settings: Any) -> Any:
        raise StorageError("endpoint unreachable", operation="ensure_tables", subject="Users")

    monkeypatch.setenv("DSN", "dynamo-local")
    monkeypatch.setattr(factory, "build_repository", unreachable)
    assert real_cli.main(["delete", "--email", "a@b.c"]) == 1
    err = json.loads(capsys.readouterr().err)
    assert err["status"] == "INTERNAL"
    assert "endpoint unreachable" in err["error"]
