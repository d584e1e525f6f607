"""Error vocabulary shared by every :class:`~userservice.repositories.users.UserRepo`.

Adapters raise these with the failing operation and subject attached and chain
the underlying driver exception via ``raise ... from exc``. Callers branch on
the class (``isinstance``), never on the message.
"""

from __future__ import annotations

from typing import Optional


class RepositoryError(Exception):
    """Base class for repository failures."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.subject = subject
        self.reason = message
        prefix = ""
        if operation:
            prefix = f"{operation}({subject}): " if subject else f"{operation}: "
        super().__init__(prefix + message)


class NotFoundError(RepositoryError):
    """No user exists for the given public key or email."""


class IndexInconsistencyError(NotFoundError):
    """An email index entry references a user record that does not exist."""


class AlreadyExistsError(RepositoryError):
    """A user with the same email or public key is already stored."""


class CodecError(RepositoryError):
    """Public key bytes are malformed or use an unsupported algorithm."""


class StorageError(RepositoryError):
    """The storage engine failed or could not be reached."""


class StorageTimeoutError(StorageError):
    """The call did not finish before its deadline."""
