"""
SQLAlchemy ORM Models for the catalog service

The service persists a handful of string values (cache envelope, favorites,
playback progress) keyed by fixed names.
"""
from datetime import datetime, timezone
from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class StoredValue(Base):
    """Key-value row"""
    __tablename__ = "stored_values"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<StoredValue(key={self.key}, size={len(self.value)})>"
