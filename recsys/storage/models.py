"""SQLAlchemy ORM models for durable recommendation state."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recsys.storage.db import Base


class StoredRecord(Base):
    """One JSON-encoded record per (namespace, key)."""

    __tablename__ = "stored_records"

    namespace: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_stored_records_updated_at", "namespace", "updated_at"),)
