"""User account storage service with interchangeable SQLite and DynamoDB backends."""

__version__ = "0.1.0"
