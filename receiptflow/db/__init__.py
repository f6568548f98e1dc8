"""Database module for receiptflow."""

from receiptflow.db.database import (
    Database,
    close_database,
    get_database,
    init_database,
)

__all__ = [
    "Database",
    "close_database",
    "get_database",
    "init_database",
]
