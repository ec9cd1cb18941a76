"""
Database Infrastructure Package for Willcraft

Exports database utilities.
"""

from willcraft.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session_context,
    session_scope,
    init_db,
    close_db,
)


__all__ = [
    "DatabaseManager",
    "get_db_manager",
    "get_session_context",
    "session_scope",
    "init_db",
    "close_db",
]
