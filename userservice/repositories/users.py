from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..domain.entities import User
from .deadline import Deadline


class UserRepo(ABC):
    """Abstract repository interface for :class:`User` entities.

    Every method accepts an optional :class:`Deadline`; implementations
    combine it with their own per-call timeout. Reads either return a fully
    populated user or raise :class:`~userservice.repositories.errors.NotFoundError`.
    """

    @abstractmethod
    def get_by_pk(self, public_key_der: bytes, *, deadline: Optional[Deadline] = None) -> User:
        """
        Fetch a user by the DER encoding of their public key.

        Example:
            >>> repo.get_by_pk(key_der)
            User(email='jon.doe@email.com', name='Jon Doe', ...)

        :param public_key_der: X.509 SubjectPublicKeyInfo bytes.
        :raises NotFoundError: no user holds this key.
        """

    @abstractmethod
    def get_by_email(self, email: str, *, deadline: Optional[Deadline] = None) -> User:
        """
        Fetch a user by email.

        :raises NotFoundError: no user is registered under ``email``.
        """

    @abstractmethod
    def create(self, user: User, *, deadline: Optional[Deadline] = None) -> User:
        """
        Persist a new user and return it with ``created_at``/``updated_at`` set.

        :raises AlreadyExistsError: the email or the public key is taken.
        """

    @abstractmethod
    def delete_by_email(self, email: str, *, deadline: Optional[Deadline] = None) -> None:
        """
        Remove the user registered under ``email``.

        :raises NotFoundError: no user is registered under ``email``.
        """
