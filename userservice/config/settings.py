"""Application settings for the user service.

Environment variables are loaded from a ``.env`` file using ``python-dotenv``
and exposed through an immutable Pydantic settings object. ``DSN`` selects the
storage backend: ``dynamo`` for AWS DynamoDB, ``dynamo-local`` for a local
DynamoDB instance, anything else is treated as an SQLite database path.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

# Load environment variables from a .env file if present
load_dotenv()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
ENV_DSN = "DSN"
DSN_DYNAMO = "dynamo"
DSN_DYNAMO_LOCAL = "dynamo-local"
DEFAULT_DYNAMO_LOCAL_ENDPOINT = "http://localhost:8000"
DEFAULT_AWS_REGION = "us-west-2"
DEFAULT_USERS_TABLE = "Users"
DEFAULT_EMAIL_INDEX_TABLE = "EmailToUserPk"
STORAGE_TIMEOUT = 10.0  # seconds


class Settings(BaseModel):
    """Immutable settings object used across the application."""

    dsn: str
    dynamo_endpoint: str | None = None
    aws_region: str = DEFAULT_AWS_REGION
    users_table: str = DEFAULT_USERS_TABLE
    email_index_table: str = DEFAULT_EMAIL_INDEX_TABLE
    storage_timeout: float = STORAGE_TIMEOUT

    model_config = ConfigDict(frozen=True)

    @property
    def uses_dynamo(self) -> bool:
        return self.dsn in {DSN_DYNAMO, DSN_DYNAMO_LOCAL}


def _parse_timeout(raw: str | None) -> float:
    if raw is None or not raw.strip():
        return STORAGE_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"STORAGE_TIMEOUT_SECONDS must be a number, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError("STORAGE_TIMEOUT_SECONDS must be positive")
    return value


def build_settings() -> Settings:
    """Construct a ``Settings`` instance from environment variables."""

    dsn = os.getenv(ENV_DSN, "").strip()
    if not dsn:
        raise RuntimeError(f"Specify the {ENV_DSN} environment variable")

    endpoint = os.getenv("DYNAMO_ENDPOINT") or None
    if dsn == DSN_DYNAMO_LOCAL and endpoint is None:
        endpoint = DEFAULT_DYNAMO_LOCAL_ENDPOINT

    return Settings(
        dsn=dsn,
        dynamo_endpoint=endpoint,
        aws_region=os.getenv("AWS_REGION", DEFAULT_AWS_REGION),
        users_table=os.getenv("USERS_TABLE", DEFAULT_USERS_TABLE),
        email_index_table=os.getenv("EMAIL_INDEX_TABLE", DEFAULT_EMAIL_INDEX_TABLE),
        storage_timeout=_parse_timeout(os.getenv("STORAGE_TIMEOUT_SECONDS")),
    )
