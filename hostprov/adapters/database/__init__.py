"""Database adapters."""

from hostprov.adapters.database.mysql import MySQLAdapter

__all__ = ["MySQLAdapter"]
