"""
SQLite3 backends.

.. autosummary::
    :toctree:

    aiosqlite
"""
from pkgutil import extend_path

from asyncstorm.backends.base import BaseDialect

__path__ = extend_path(__path__, __name__)

DEFAULT_CONNECTOR = "aiosqlite"


class Sqlite3Dialect(BaseDialect):
    """
    The dialect for SQLite3.
    """

    @property
    def has_ilike(self):
        return False

    @property
    def has_join_delete(self):
        return False

    @property
    def connect_statements(self):
        # LIKE is case-insensitive for ASCII out of the box
        return ("PRAGMA case_sensitive_like = ON;",)
