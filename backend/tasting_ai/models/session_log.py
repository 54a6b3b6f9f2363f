"""
Tasting AI — Processing Session Log Model
==========================================

What:  ORM model for `processing_session_logs`, one row per pipeline run.
Why:   Feeds the processing-stats report (success rate, average time,
       per-step usage and accuracy) without re-reading cached snapshots.
How:   SessionLog inserts a row at the end of each run and prunes to the
       most recent N rows.

Query Patterns:
    - Aggregate stats: SELECT ... ORDER BY created_at DESC LIMIT N
    - Retention prune: DELETE ... WHERE id NOT IN (newest N ids)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tasting_ai.database import Base


class ProcessingSessionLog(Base):
    """
    Outcome of a single pipeline run.

    `steps` holds a compact per-step summary:
        [{"id": "optical-extraction", "status": "completed", "confidence": 82}, ...]
    """

    __tablename__ = "processing_session_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    session_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Pipeline session identifier",
    )

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    steps_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    # UTC, timezone-aware; conversion to local time is the client's concern
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_session_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProcessingSessionLog(session_id='{self.session_id}', "
            f"success={self.success}, confidence={self.confidence})>"
        )
