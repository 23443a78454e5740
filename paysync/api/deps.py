"""Shared API dependencies — single import point for all routers.

Re-exports the database handle and the request identity so that router
modules can import everything they need from one place::

    from paysync.api.deps import get_database, get_request_user
"""

from paysync.auth.dependencies import RequestUser, get_request_user
from paysync.database import Database, get_database

__all__ = [
    "Database",
    "RequestUser",
    "get_database",
    "get_request_user",
]
