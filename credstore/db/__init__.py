"""Database connection management for credstore."""

from credstore.db.connection import REPEATABLE_READ, close_pool, get_connection, get_pool

__all__ = ["REPEATABLE_READ", "close_pool", "get_connection", "get_pool"]
