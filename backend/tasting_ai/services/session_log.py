"""
Tasting AI — Session Log & Processing Stats
============================================

What:  Records the outcome of every pipeline run and aggregates the
       retained rows into processing statistics.
Why:   The app shows how its AI features are doing (success rate, typical
       wait, which steps people use, how confident each step tends to be).
How:   One `processing_session_logs` row per run. After each insert, rows
       beyond the retention limit (newest N kept) are deleted.

Failure Policy:
    Logging a run and reading stats are both best-effort. A failed insert
    is logged and dropped. Failed stats return a zeroed ProcessingStats.
    Neither raises.
"""

import logging
from collections import defaultdict
from typing import Dict, List

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from tasting_ai.database import Database
from tasting_ai.models.session_log import ProcessingSessionLog
from tasting_ai.schemas.api import ProcessingStats
from tasting_ai.schemas.pipeline import ProcessingSession, StepId, StepStatus

logger = logging.getLogger(__name__)


class SessionLog:
    def __init__(self, database: Database, retention: int = 100):
        self.database = database
        self.retention = retention

    async def record(self, session: ProcessingSession) -> bool:
        """Insert one row for `session` and prune old rows. Returns False on failure."""
        row = ProcessingSessionLog(
            session_id=session.session_id,
            success=session.success,
            processing_time_ms=session.processing_time_ms,
            confidence=session.confidence,
            steps_completed=session.steps_completed,
            total_steps=len(session.steps),
            steps=[
                {
                    "id": step.id.value,
                    "status": step.status.value,
                    "confidence": step.confidence,
                }
                for step in session.steps
            ],
            error=session.error,
        )
        try:
            async with self.database.session() as db:
                db.add(row)
                await db.flush()
                keep = (
                    select(ProcessingSessionLog.id)
                    .order_by(ProcessingSessionLog.id.desc())
                    .limit(self.retention)
                )
                await db.execute(
                    delete(ProcessingSessionLog).where(ProcessingSessionLog.id.not_in(keep))
                )
            return True
        except SQLAlchemyError as e:
            logger.warning("Session log write failed for %s: %s", session.session_id, str(e))
            return False

    async def recent(self, limit: int = 20) -> List[ProcessingSessionLog]:
        async with self.database.session() as db:
            result = await db.execute(
                select(ProcessingSessionLog)
                .order_by(ProcessingSessionLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def processing_stats(self) -> ProcessingStats:
        """
        Aggregate the retained rows.

        feature_usage counts sessions that included each step (skipped
        steps still count: the feature was enabled). accuracy averages the
        confidence of completed steps that reported one.
        """
        try:
            rows = await self.recent(limit=self.retention)
        except SQLAlchemyError as e:
            logger.warning("Loading processing stats failed: %s", str(e))
            return ProcessingStats()

        if not rows:
            return ProcessingStats()

        feature_usage: Dict[str, int] = {step.value: 0 for step in StepId}
        confidences: Dict[str, List[int]] = defaultdict(list)
        for row in rows:
            for step in row.steps or []:
                step_id = step.get("id")
                if step_id not in feature_usage:
                    continue
                feature_usage[step_id] += 1
                if (
                    step.get("status") == StepStatus.COMPLETED.value
                    and step.get("confidence") is not None
                ):
                    confidences[step_id].append(step["confidence"])

        total = len(rows)
        successes = sum(1 for row in rows if row.success)
        return ProcessingStats(
            total_sessions=total,
            success_rate=round(successes / total * 100, 1),
            average_processing_time_ms=round(
                sum(row.processing_time_ms for row in rows) / total, 1
            ),
            feature_usage=feature_usage,
            accuracy={
                step_id: round(sum(values) / len(values), 1)
                for step_id, values in confidences.items()
            },
        )
