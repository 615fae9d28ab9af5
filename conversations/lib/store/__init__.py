"""Database connection management and utilities."""

from .connection import Row, Store, from_row
from .migrations import column_names, migrate
from .sqlite import connect

__all__ = [
    "Row",
    "Store",
    "column_names",
    "connect",
    "from_row",
    "migrate",
]
