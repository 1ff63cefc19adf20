# src/quire/db/__init__.py
"""Database configuration and utilities.

The engine lives in :mod:`quire.db.session`; import it from there so that
pulling in the time helpers does not open a connection pool.
"""

from .time import as_utc, utcnow

__all__ = ["as_utc", "utcnow"]
