from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from userservice.domain.entities import User
from userservice.repositories.codec import decode_public_key, encode_public_key
from userservice.repositories.deadline import Deadline
from userservice.repositories.errors import (
    AlreadyExistsError,
    CodecError,
    NotFoundError,
    RepositoryError,
)
from userservice.repositories.users import UserRepo

logger = logging.getLogger(__name__)


class Status(str, Enum):
    """Outcome classes a transport maps onto its own status codes."""

    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INTERNAL = "INTERNAL"

    @property
    def http_code(self) -> int:
        return _HTTP_CODES[self]


_HTTP_CODES = {
    Status.NOT_FOUND: 404,
    Status.ALREADY_EXISTS: 409,
    Status.INVALID_ARGUMENT: 400,
    Status.INTERNAL: 500,
}


class ServiceError(RuntimeError):
    """Raised by :class:`UserService`; the repository error is kept as ``__cause__``."""

    def __init__(self, message: str, status: Status) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class UserMessage:
    """Wire representation of a user."""

    email: str
    name: str
    public_key: bytes
    wrapped_private_key: bytes
    wrapped_master_key: bytes
    created_at_unix: int
    updated_at_unix: int

    def to_dict(self) -> dict[str, object]:
        return {
            "email": self.email,
            "name": self.name,
            "public_key": self.public_key.hex(),
            "wrapped_private_key": self.wrapped_private_key.hex(),
            "wrapped_master_key": self.wrapped_master_key.hex(),
            "created_at_unix": self.created_at_unix,
            "updated_at_unix": self.updated_at_unix,
        }


@dataclass(frozen=True)
class UserPkMessage:
    email: str
    public_key: bytes


def user_to_message(user: User) -> UserMessage:
    created = user.created_at
    updated = user.updated_at
    return UserMessage(
        email=user.email,
        name=user.name,
        public_key=encode_public_key(user.public_key),
        wrapped_private_key=user.wrapped_private_key,
        wrapped_master_key=user.wrapped_master_key,
        created_at_unix=int(created.timestamp()) if created else 0,
        updated_at_unix=int(updated.timestamp()) if updated else 0,
    )


def _status_for(exc: Exception, *, reading: bool = False) -> Status:
    if isinstance(exc, NotFoundError):
        return Status.NOT_FOUND
    if isinstance(exc, AlreadyExistsError):
        return Status.ALREADY_EXISTS
    # On reads a codec failure means the stored record is corrupt
    if isinstance(exc, (CodecError, ValidationError)) and not reading:
        return Status.INVALID_ARGUMENT
    return Status.INTERNAL


class UserService:
    """Transport-agnostic user service.

    - Decodes wire public keys, builds entities and calls one repository
      method per request.
    - Converts results into :class:`UserMessage` objects.
    - Maps repository errors onto :class:`Status` values; anything it does not
      recognise becomes ``INTERNAL``.
    """

    def __init__(self, repo: UserRepo, *, timeout: Optional[float] = None) -> None:
        self._repo = repo
        self._timeout = timeout

    def _deadline(self) -> Optional[Deadline]:
        return Deadline.after(self._timeout) if self._timeout is not None else None

    def _fail(self, action: str, exc: Exception, *, reading: bool = False) -> ServiceError:
        status = _status_for(exc, reading=reading)
        if status is Status.INTERNAL:
            logger.warning(
                "User service call failed", extra={"operation": action, "error": str(exc)}
            )
        return ServiceError(f"failed to {action}: {exc}", status)

    def get_user_by_pk(self, public_key: bytes) -> UserMessage:
        try:
            user = self._repo.get_by_pk(public_key, deadline=self._deadline())
        except RepositoryError as exc:
            raise self._fail("fetch user", exc, reading=True) from exc
        return user_to_message(user)

    def get_user_by_email(self, email: str) -> UserMessage:
        try:
            user = self._repo.get_by_email(email, deadline=self._deadline())
        except RepositoryError as exc:
            raise self._fail("fetch user", exc, reading=True) from exc
        return user_to_message(user)

    def get_user_pk_by_email(self, email: str) -> UserPkMessage:
        message = self.get_user_by_email(email)
        return UserPkMessage(email=message.email, public_key=message.public_key)

    def create_user(
        self,
        email: str,
        name: str,
        public_key: bytes,
        wrapped_private_key: bytes,
        wrapped_master_key: bytes,
    ) -> UserMessage:
        try:
            user = User(
                email=email,
                name=name,
                public_key=decode_public_key(public_key),
                wrapped_private_key=wrapped_private_key,
                wrapped_master_key=wrapped_master_key,
            )
            created = self._repo.create(user, deadline=self._deadline())
        except (RepositoryError, ValidationError) as exc:
            raise self._fail("create user", exc) from exc
        return user_to_message(created)

    def delete_user_by_email(self, email: str) -> None:
        try:
            self._repo.delete_by_email(email, deadline=self._deadline())
        except RepositoryError as exc:
            raise self._fail("delete user", exc) from exc
