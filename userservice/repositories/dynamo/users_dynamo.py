from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from ...domain.entities import User
from ..codec import UserRecord, format_timestamp, parse_timestamp, record_to_user, user_to_record
from ..deadline import Deadline
from ..errors import (
    AlreadyExistsError,
    CodecError,
    IndexInconsistencyError,
    NotFoundError,
    StorageError,
    StorageTimeoutError,
)
from ..users import UserRepo
from .tables import DynamoTablesConfig, ensure_tables, error_code

if TYPE_CHECKING:  # pragma: no cover - import for type checkers only
    from ...config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _marshal(item: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _serializer.serialize(value) for key, value in item.items()}


def _unmarshal(item: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _deserializer.deserialize(value) for key, value in item.items()}


def _conditional_failure(exc: ClientError) -> list[bool]:
    """Return, per transaction item, whether its condition check failed."""
    reasons = exc.response.get("CancellationReasons") or []
    if reasons:
        return [r.get("Code") == "ConditionalCheckFailed" for r in reasons]
    # Some endpoints only report the reasons inside the message
    message = str(exc.response.get("Error", {}).get("Message", ""))
    if "[" in message:
        codes = message[message.rfind("[") + 1 : message.rfind("]")].split(",")
        return [code.strip() == "ConditionalCheckFailed" for code in codes]
    return []


class UsersRepoDynamo(UserRepo):
    """DynamoDB implementation of :class:`UserRepo`.

    DynamoDB has no secondary unique index, so the adapter keeps the
    ``email -> public key`` table in sync with the ``Users`` table itself.
    Both tables are only ever mutated together inside a single
    ``TransactWriteItems`` call, and every put is conditional on the key being
    absent, so concurrent creates for the same email cannot both succeed.

    Reads use strongly consistent ``GetItem`` so a user is visible by email and
    by key as soon as :meth:`create` returns.
    """

    def __init__(
        self,
        client: Any,
        config: DynamoTablesConfig | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        provision: bool = True,
    ) -> None:
        self._client = client
        self._config = config or DynamoTablesConfig()
        self._timeout = float(timeout)
        if provision:
            ensure_tables(self._client, self._config)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "UsersRepoDynamo":
        """Build a client for ``settings`` and provision the tables."""
        client = boto3.client(
            "dynamodb",
            region_name=settings.aws_region,
            endpoint_url=settings.dynamo_endpoint,
            config=Config(
                connect_timeout=settings.storage_timeout,
                read_timeout=settings.storage_timeout,
                retries={"total_max_attempts": 1},
            ),
        )
        config = DynamoTablesConfig(
            users_table=settings.users_table,
            email_index_table=settings.email_index_table,
        )
        return cls(client, config, timeout=settings.storage_timeout)

    # ------------------------------------------------------------------
    # Low level helpers
    # ------------------------------------------------------------------
    def _call(
        self,
        deadline: Deadline,
        operation: str,
        subject: str,
        fn: Callable[..., Any],
        *,
        expected: frozenset[str] = frozenset(),
        **kwargs: Any,
    ) -> Any:
        """Invoke one client method under ``deadline``.

        Client errors whose code is in ``expected`` propagate unchanged for
        the caller to interpret; everything else becomes a storage error.
        """
        deadline.check(operation, subject)
        try:
            result = fn(**kwargs)
        except (ReadTimeoutError, ConnectTimeoutError) as exc:
            raise StorageTimeoutError(str(exc), operation=operation, subject=subject) from exc
        except ClientError as exc:
            if error_code(exc) in expected:
                raise
            logger.warning(
                "DynamoDB call failed", extra={"operation": operation, "error": str(exc)}
            )
            raise StorageError(str(exc), operation=operation, subject=subject) from exc
        except BotoCoreError as exc:
            logger.warning(
                "DynamoDB call failed", extra={"operation": operation, "error": str(exc)}
            )
            raise StorageError(str(exc), operation=operation, subject=subject) from exc
        # Late replies count as timeouts
        deadline.check(operation, subject)
        return result

    def _user_item(self, record: UserRecord) -> dict[str, Any]:
        return {
            self._config.users_key: record.public_key_der,
            "Email": record.email,
            "Name": record.name,
            "WrappedPrivateKey": record.wrapped_private_key,
            "WrappedMasterKey": record.wrapped_master_key,
            "CreatedAt": format_timestamp(record.created_at),
            "UpdatedAt": format_timestamp(record.updated_at),
        }

    def _record_from_item(self, item: Mapping[str, Any], subject: str) -> UserRecord:
        data = _unmarshal(item)
        try:
            return UserRecord(
                email=str(data["Email"]),
                name=str(data["Name"]),
                public_key_der=bytes(data[self._config.users_key]),
                wrapped_private_key=bytes(data["WrappedPrivateKey"]),
                wrapped_master_key=bytes(data["WrappedMasterKey"]),
                created_at=parse_timestamp(data["CreatedAt"]),
                updated_at=parse_timestamp(data["UpdatedAt"]),
            )
        except (KeyError, TypeError) as exc:
            raise CodecError(
                f"stored item is missing or has a malformed attribute: {exc}",
                operation="unmarshal_user",
                subject=subject,
            ) from exc

    def _lookup_pk(self, key: bytes, deadline: Deadline, operation: str, subject: str) -> User:
        result = self._call(
            deadline,
            operation,
            subject,
            self._client.get_item,
            TableName=self._config.users_table,
            Key={self._config.users_key: {"B": key}},
            ConsistentRead=True,
        )
        item = result.get("Item")
        if not item:
            raise NotFoundError("no such user", operation=operation, subject=subject)
        return record_to_user(self._record_from_item(item, subject))

    def _resolve_key(self, email: str, deadline: Deadline, operation: str) -> Optional[bytes]:
        """Return the public key the email index points at, if any."""
        result = self._call(
            deadline,
            operation,
            email,
            self._client.get_item,
            TableName=self._config.email_index_table,
            Key={self._config.email_index_key: {"S": email}},
            ConsistentRead=True,
        )
        item = result.get("Item")
        if not item:
            return None
        entry = _unmarshal(item)
        try:
            return bytes(entry[self._config.email_index_value])
        except (KeyError, TypeError) as exc:
            raise CodecError(
                "email index entry has no public key", operation=operation, subject=email
            ) from exc

    # ------------------------------------------------------------------
    # UserRepo
    # ------------------------------------------------------------------
    def get_by_pk(self, public_key_der: bytes, *, deadline: Optional[Deadline] = None) -> User:
        deadline = Deadline.earliest(deadline, self._timeout)
        key = bytes(public_key_der)
        return self._lookup_pk(key, deadline, "get_by_pk", key.hex()[:16])

    def get_by_email(self, email: str, *, deadline: Optional[Deadline] = None) -> User:
        # Two dependent round trips
        deadline = Deadline.earliest(deadline, 2 * self._timeout)
        key = self._resolve_key(email, deadline, "get_by_email")
        if key is None:
            raise NotFoundError("no such user", operation="get_by_email", subject=email)
        try:
            return self._lookup_pk(key, deadline, "get_by_email", email)
        except NotFoundError as exc:
            logger.error(
                "Email index entry references a missing user",
                extra={"operation": "get_by_email", "email": email, "public_key": key.hex()},
            )
            raise IndexInconsistencyError(
                "email index entry references a missing user",
                operation="get_by_email",
                subject=email,
            ) from exc

    def create(self, user: User, *, deadline: Optional[Deadline] = None) -> User:
        deadline = Deadline.earliest(deadline, 2 * self._timeout)
        if self._resolve_key(user.email, deadline, "create") is not None:
            raise AlreadyExistsError(
                "email already registered", operation="create", subject=user.email
            )

        stamped = user.with_timestamps(datetime.now(timezone.utc))
        record = user_to_record(stamped)
        index_item = {
            self._config.email_index_key: record.email,
            self._config.email_index_value: record.public_key_der,
        }
        try:
            self._call(
                deadline,
                "create",
                user.email,
                self._client.transact_write_items,
                expected=frozenset({"TransactionCanceledException"}),
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self._config.users_table,
                            "Item": _marshal(self._user_item(record)),
                            "ConditionExpression": "attribute_not_exists(#k)",
                            "ExpressionAttributeNames": {"#k": self._config.users_key},
                        }
                    },
                    {
                        "Put": {
                            "TableName": self._config.email_index_table,
                            "Item": _marshal(index_item),
                            "ConditionExpression": "attribute_not_exists(#k)",
                            "ExpressionAttributeNames": {"#k": self._config.email_index_key},
                        }
                    },
                ],
            )
        except ClientError as exc:
            failed = _conditional_failure(exc)
            if any(failed):
                what = "public key already registered" if failed[0] else "email already registered"
                raise AlreadyExistsError(what, operation="create", subject=user.email) from exc
            raise StorageError(str(exc), operation="create", subject=user.email) from exc

        logger.info("User created", extra={"operation": "create", "email": user.email})
        return stamped

    def delete_by_email(self, email: str, *, deadline: Optional[Deadline] = None) -> None:
        deadline = Deadline.earliest(deadline, 2 * self._timeout)
        key = self._resolve_key(email, deadline, "delete_by_email")
        if key is None:
            raise NotFoundError("no such user", operation="delete_by_email", subject=email)
        try:
            self._call(
                deadline,
                "delete_by_email",
                email,
                self._client.transact_write_items,
                expected=frozenset({"TransactionCanceledException"}),
                TransactItems=[
                    {
                        "Delete": {
                            "TableName": self._config.email_index_table,
                            "Key": {self._config.email_index_key: {"S": email}},
                            "ConditionExpression": "#v = :pk",
                            "ExpressionAttributeNames": {"#v": self._config.email_index_value},
                            "ExpressionAttributeValues": {":pk": {"B": key}},
                        }
                    },
                    {
                        "Delete": {
                            "TableName": self._config.users_table,
                            "Key": {self._config.users_key: {"B": key}},
                        }
                    },
                ],
            )
        except ClientError as exc:
            if any(_conditional_failure(exc)):
                # Removed or re-pointed by a concurrent call after we resolved it
                raise NotFoundError(
                    "user removed concurrently", operation="delete_by_email", subject=email
                ) from exc
            raise StorageError(str(exc), operation="delete_by_email", subject=email) from exc
        logger.info("User deleted", extra={"operation": "delete_by_email", "email": email})
