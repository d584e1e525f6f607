"""Conversion between :class:`User` entities and their stored representation.

Public keys cross every storage and wire boundary as DER encoded X.509
SubjectPublicKeyInfo bytes. Only elliptic-curve keys are accepted; anything
else is a :class:`CodecError`, never a not-found condition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePublicKey
from pydantic import ValidationError

from ..domain.entities import User
from .errors import CodecError


@dataclass
class UserRecord:
    """Storage-neutral row shared by the SQLite and DynamoDB adapters."""

    email: str
    name: str
    public_key_der: bytes
    wrapped_private_key: bytes
    wrapped_master_key: bytes
    created_at: datetime
    updated_at: datetime


def encode_public_key(key: Any) -> bytes:
    if not isinstance(key, EllipticCurvePublicKey):
        raise CodecError(
            f"unsupported public key type {type(key).__name__}, expected an elliptic-curve key",
            operation="encode_public_key",
        )
    return key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def decode_public_key(data: bytes) -> EllipticCurvePublicKey:
    try:
        key = serialization.load_der_public_key(bytes(data))
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CodecError(
            "not a valid X.509 SubjectPublicKeyInfo public key", operation="decode_public_key"
        ) from exc
    if not isinstance(key, EllipticCurvePublicKey):
        raise CodecError(
            f"valid X.509 public key but {type(key).__name__} is not an elliptic-curve key",
            operation="decode_public_key",
        )
    return key


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise CodecError(f"invalid stored timestamp {value!r}", operation="parse_timestamp") from exc
    if parsed.tzinfo is None:
        # Stored values are always UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def user_to_record(user: User) -> UserRecord:
    if user.created_at is None or user.updated_at is None:
        raise ValueError("user must carry timestamps before it is stored")
    return UserRecord(
        email=user.email,
        name=user.name,
        public_key_der=encode_public_key(user.public_key),
        wrapped_private_key=bytes(user.wrapped_private_key),
        wrapped_master_key=bytes(user.wrapped_master_key),
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def record_to_user(record: UserRecord) -> User:
    key = decode_public_key(record.public_key_der)
    try:
        return User(
            email=record.email,
            name=record.name,
            public_key=key,
            wrapped_private_key=bytes(record.wrapped_private_key),
            wrapped_master_key=bytes(record.wrapped_master_key),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
    except ValidationError as exc:
        raise CodecError(
            "stored record does not form a valid user",
            operation="record_to_user",
            subject=record.email,
        ) from exc
