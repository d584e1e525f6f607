from .tables import DynamoTablesConfig, ensure_tables
from .users_dynamo import UsersRepoDynamo

__all__ = ["DynamoTablesConfig", "UsersRepoDynamo", "ensure_tables"]
