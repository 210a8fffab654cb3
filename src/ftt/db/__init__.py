"""Database engine and session management."""

from .connection import (
    close_engine,
    commit_or_rollback,
    create_engine_for,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_models,
)

__all__ = [
    "close_engine",
    "commit_or_rollback",
    "create_engine_for",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "init_models",
]
