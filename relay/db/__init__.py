"""Database layer."""

from relay.db.session import close_db, get_async_session, get_session_dependency, init_db

__all__ = ["init_db", "close_db", "get_async_session", "get_session_dependency"]
