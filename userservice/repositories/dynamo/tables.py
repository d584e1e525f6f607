"""DynamoDB table layout and idempotent provisioning.

Two tables back the key-value adapter:

- ``Users``: hash key is the DER encoded public key (binary).
- ``EmailToUserPk``: hash key is the email, ``PrimaryKey`` holds the DER
  encoded public key of the matching ``Users`` item.
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError, WaiterError
from pydantic import BaseModel, ConfigDict

from ..errors import StorageError

logger = logging.getLogger(__name__)

WAIT_DELAY_SECONDS = 1
WAIT_MAX_ATTEMPTS = 60


class DynamoTablesConfig(BaseModel):
    """Table and attribute names used by :class:`UsersRepoDynamo`."""

    users_table: str = "Users"
    users_key: str = "PublicKeyPKIX"
    email_index_table: str = "EmailToUserPk"
    email_index_key: str = "Email"
    email_index_value: str = "PrimaryKey"

    model_config = ConfigDict(frozen=True)


def error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def table_definitions(config: DynamoTablesConfig) -> list[dict[str, Any]]:
    """Return the ``create_table`` requests for both tables."""
    return [
        {
            "TableName": config.users_table,
            "AttributeDefinitions": [{"AttributeName": config.users_key, "AttributeType": "B"}],
            "KeySchema": [{"AttributeName": config.users_key, "KeyType": "HASH"}],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": config.email_index_table,
            "AttributeDefinitions": [
                {"AttributeName": config.email_index_key, "AttributeType": "S"}
            ],
            "KeySchema": [{"AttributeName": config.email_index_key, "KeyType": "HASH"}],
            "BillingMode": "PAY_PER_REQUEST",
        },
    ]


def ensure_tables(client: Any, config: DynamoTablesConfig) -> list[str]:
    """Create any missing table and return the names of those created.

    Tables that already exist are left untouched, so calling this against a
    provisioned backend is a no-op.
    """
    created: list[str] = []
    for request in table_definitions(config):
        name = request["TableName"]
        try:
            client.describe_table(TableName=name)
            logger.debug("Table already provisioned", extra={"table": name})
            continue
        except ClientError as exc:
            if error_code(exc) != "ResourceNotFoundException":
                raise StorageError(str(exc), operation="describe_table", subject=name) from exc

        try:
            client.create_table(**request)
        except ClientError as exc:
            if error_code(exc) == "ResourceInUseException":
                # Created concurrently by another process
                continue
            raise StorageError(str(exc), operation="create_table", subject=name) from exc

        try:
            client.get_waiter("table_exists").wait(
                TableName=name,
                WaiterConfig={"Delay": WAIT_DELAY_SECONDS, "MaxAttempts": WAIT_MAX_ATTEMPTS},
            )
        except WaiterError as exc:
            raise StorageError(str(exc), operation="create_table", subject=name) from exc
        logger.info("Table created", extra={"table": name})
        created.append(name)
    return created
