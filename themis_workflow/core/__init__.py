"""Core application utilities."""

from .clock import Clock, FixedClock, SystemClock
from .config import Settings, get_settings
from .database import (
    close_storage,
    create_session_factory,
    create_storage_engine,
    init_storage,
    session_scope,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Config
    "Settings",
    "get_settings",
    # Database
    "create_storage_engine",
    "create_session_factory",
    "session_scope",
    "init_storage",
    "close_storage",
]
