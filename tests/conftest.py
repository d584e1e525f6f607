from __future__ import annotations

import sqlite3
from collections.abc import Callable, Generator, Iterator
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

from tests.factories import REGION
from userservice.repositories.dynamo.users_dynamo import UsersRepoDynamo
from userservice.repositories.sqlite.users_sqlite import UsersRepoSqlite, sqlite_connector
from userservice.repositories.users import UserRepo


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def dynamo_client(aws_credentials: None) -> Iterator[object]:
    with mock_aws():
        yield boto3.client("dynamodb", region_name=REGION)


@pytest.fixture
def sqlite_connect(tmp_path: Path) -> Callable[[], sqlite3.Connection]:
    return sqlite_connector(str(tmp_path / "users.sqlite3"), 5.0)


@pytest.fixture
def sqlite_conn(
    sqlite_connect: Callable[[], sqlite3.Connection],
) -> Generator[sqlite3.Connection, None, None]:
    """A separate connection to the database the repository uses."""
    conn = sqlite_connect()
    yield conn
    conn.close()


@pytest.fixture(params=["sqlite", "dynamo"])
def repo(request: pytest.FixtureRequest, aws_credentials: None) -> Iterator[UserRepo]:
    """Every backend, for tests of the shared repository contract."""
    if request.param == "sqlite":
        yield UsersRepoSqlite(sqlite_connector(":memory:"))
    else:
        with mock_aws():
            yield UsersRepoDynamo(boto3.client("dynamodb", region_name=REGION))
