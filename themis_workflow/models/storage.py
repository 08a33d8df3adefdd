"""SQLAlchemy table backing the key-value persistence interface.

Domain records are plain dataclasses owned by the external entity store;
the only table this service manages is ``kv_entries``.
"""

from datetime import datetime

from sqlalchemy import DateTime, MetaData, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Constraint names stay stable across backends and migrations
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    """Declarative base for the persistence tables."""

    metadata = metadata

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class KeyValueEntry(Base):
    """One serialized value per key (notification log, dedupe ledger)."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )
