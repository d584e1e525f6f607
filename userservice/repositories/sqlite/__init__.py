from .users_sqlite import UsersRepoSqlite, sqlite_connector

__all__ = ["UsersRepoSqlite", "sqlite_connector"]
