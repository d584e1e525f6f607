"""Repository interface and implementations.

This package defines the abstract :class:`UserRepo` contract, its error
vocabulary and the concrete adapters under :mod:`repositories.sqlite` and
:mod:`repositories.dynamo`.
"""

from .deadline import Deadline
from .errors import (
    AlreadyExistsError,
    CodecError,
    IndexInconsistencyError,
    NotFoundError,
    RepositoryError,
    StorageError,
    StorageTimeoutError,
)
from .users import UserRepo

__all__ = [
    "AlreadyExistsError",
    "CodecError",
    "Deadline",
    "IndexInconsistencyError",
    "NotFoundError",
    "RepositoryError",
    "StorageError",
    "StorageTimeoutError",
    "UserRepo",
]
