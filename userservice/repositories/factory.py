"""Select and build the storage backend named by ``Settings.dsn``."""

from __future__ import annotations

import logging

from ..config.settings import DSN_DYNAMO, DSN_DYNAMO_LOCAL, Settings
from .users import UserRepo

logger = logging.getLogger(__name__)


def build_repository(settings: Settings) -> UserRepo:
    """Return the :class:`UserRepo` implementation configured by ``settings``.

    - ``dynamo``: DynamoDB through the default AWS credential chain.
    - ``dynamo-local``: DynamoDB at ``settings.dynamo_endpoint``.
    - anything else: an SQLite database at that path, one connection per
      calling thread.
    """
    if settings.dsn in {DSN_DYNAMO, DSN_DYNAMO_LOCAL}:
        from .dynamo.users_dynamo import UsersRepoDynamo

        logger.info(
            "Using DynamoDB backend",
            extra={"dsn": settings.dsn, "endpoint": settings.dynamo_endpoint},
        )
        return UsersRepoDynamo.from_settings(settings)

    from .sqlite.users_sqlite import UsersRepoSqlite, sqlite_connector

    logger.info("Using SQLite backend", extra={"dsn": settings.dsn})
    return UsersRepoSqlite(
        sqlite_connector(settings.dsn, settings.storage_timeout),
        timeout=settings.storage_timeout,
    )
