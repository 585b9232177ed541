"""
Per-source performance tracking.

The orchestrator records every call here; rows are buffered in memory and
written when the owning session flushes them. Aggregates feed waterfall
strategy selection.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.database import to_score_decimal
from prospector.sources.database import SourcePerformanceModel

logger = logging.getLogger(__name__)


@dataclass
class SourceStats:
    source: str
    calls: int
    success_rate: float
    avg_quality: float
    avg_response_time_ms: float
    avg_fields_populated: float
    total_cost: float

    @property
    def avg_cost(self) -> float:
        return self.total_cost / self.calls if self.calls else 0.0


class PerformanceTracker:
    def __init__(self):
        self._pending: List[Dict] = []

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record(
        self,
        source: str,
        operation: str,
        success: bool,
        quality_score: float = 0.0,
        response_time_ms: int = 0,
        fields_populated: int = 0,
        cost_credits: float = 0.0,
        client_id: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        self._pending.append({
            "source": source,
            "operation": operation,
            "success": success,
            "quality_score": to_score_decimal(quality_score),
            "response_time_ms": response_time_ms,
            "fields_populated": fields_populated,
            "cost_credits": cost_credits,
            "client_id": client_id,
            "error": error[:1000] if error else None,
            "created_at": datetime.utcnow(),
        })

    async def flush(self, session: AsyncSession) -> int:
        """Stage buffered metrics on the session. The caller owns the commit."""
        if not self._pending:
            return 0
        rows, self._pending = self._pending, []
        session.add_all([SourcePerformanceModel(**row) for row in rows])
        await session.flush()
        logger.debug(f"Flushed {len(rows)} source metrics")
        return len(rows)

    async def stats(
        self,
        session: AsyncSession,
        days: int = 30,
        client_id: Optional[int] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, SourceStats]:
        """Aggregate metrics per source over the lookback window."""
        since = datetime.utcnow() - timedelta(days=days)
        stmt = (
            select(
                SourcePerformanceModel.source,
                func.count(SourcePerformanceModel.id),
                func.sum(case((SourcePerformanceModel.success.is_(True), 1), else_=0)),
                func.avg(SourcePerformanceModel.quality_score),
                func.avg(SourcePerformanceModel.response_time_ms),
                func.avg(SourcePerformanceModel.fields_populated),
                func.sum(SourcePerformanceModel.cost_credits),
            )
            .where(SourcePerformanceModel.created_at >= since)
            .group_by(SourcePerformanceModel.source)
        )
        if client_id is not None:
            stmt = stmt.where(SourcePerformanceModel.client_id == client_id)
        if operation is not None:
            stmt = stmt.where(SourcePerformanceModel.operation == operation)

        result = await session.execute(stmt)
        stats = {}
        for source, calls, successes, avg_quality, avg_ms, avg_fields, total_cost in result.all():
            stats[source] = SourceStats(
                source=source,
                calls=int(calls or 0),
                success_rate=round((successes or 0) / calls, 3) if calls else 0.0,
                avg_quality=round(float(avg_quality or 0), 3),
                avg_response_time_ms=round(float(avg_ms or 0), 1),
                avg_fields_populated=round(float(avg_fields or 0), 1),
                total_cost=round(float(total_cost or 0), 4),
            )
        return stats
