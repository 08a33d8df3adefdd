"""Key-value persistence behind the notification store.

Values are opaque strings; callers serialize. The SQL implementation keeps
one row per key in ``kv_entries`` and opens a session per operation.
"""

from typing import Protocol

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..core.database import create_session_factory, session_scope
from ..models import KeyValueEntry


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqlKeyValueStore:
    """Key-value store over the ``kv_entries`` table."""

    def __init__(self, engine: Engine, session_factory: sessionmaker[Session] | None = None):
        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    def get(self, key: str) -> str | None:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(KeyValueEntry.value).where(KeyValueEntry.key == key))

    def set(self, key: str, value: str) -> None:
        with session_scope(self._session_factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value

    def remove(self, key: str) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
