"""
Tasting AI — Key-Value Entry Model
===================================

What:  ORM model for the `kv_entries` table backing the CacheStore.
Why:   Provider results, session snapshots and usage counters are all
       "key → JSON blob with a timestamp". One narrow table serves them all;
       namespaces are prefixes on the key.

Table Design Rationale:
    - key: namespaced string, e.g. "provider:vision:<sha256>" or "session:ai_session_…"
    - payload: JSON text (the store never interprets it)
    - stored_at: epoch seconds from the injected Clock, not the DB server clock,
      so TTL checks use the same time source as the rest of the service
"""

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tasting_ai.database import Base


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Namespaced cache key",
    )

    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-encoded value",
    )

    stored_at: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Epoch seconds when the value was written",
    )

    __table_args__ = (
        Index("idx_kv_entries_stored_at", "stored_at"),
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry(key='{self.key}', stored_at={self.stored_at})>"
