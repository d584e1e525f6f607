from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePublicKey
from pydantic import BaseModel, ConfigDict, Field, field_validator


class User(BaseModel):
    """User identity record.

    ``public_key`` is always an elliptic-curve public key object; the DER
    encoding only exists at the storage and wire boundaries. The wrapped key
    blobs are opaque and never interpreted here.
    """

    email: str = Field(..., description="Globally unique natural identifier")
    name: str = Field(..., description="Display name")
    public_key: EllipticCurvePublicKey = Field(..., description="ECDSA public key")
    wrapped_private_key: bytes = Field(..., repr=False)
    wrapped_master_key: bytes = Field(..., repr=False)
    created_at: datetime | None = Field(default=None, description="Set by the repository")
    updated_at: datetime | None = Field(default=None, description="Set by the repository")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("email must be a string")
        v = v.strip()
        if not v or "@" not in v:
            raise ValueError("email must be a non-empty address containing '@'")
        return v

    @field_validator("public_key", mode="before")
    @classmethod
    def _require_ec_key(cls, v: Any) -> EllipticCurvePublicKey:
        if not isinstance(v, EllipticCurvePublicKey):
            raise ValueError(
                f"public_key must be an elliptic-curve public key, got {type(v).__name__}"
            )
        return v

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _ensure_utc(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        if v.tzinfo is None:
            raise ValueError("timestamps must be timezone-aware")
        return v.astimezone(timezone.utc)

    def with_timestamps(self, now: datetime) -> "User":
        """Return a copy stamped as freshly created at ``now``."""
        now = now.astimezone(timezone.utc)
        return self.model_copy(update={"created_at": now, "updated_at": now})
