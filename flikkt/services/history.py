"""
Analysis History Service - Stores and lists identified analyses.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flikkt.db.models import FoodAnalysisHistory
from flikkt.exceptions import HistoryWriteError
from flikkt.models.domain import AnalysisResult, HistoryEntry

MAX_HISTORY_LIMIT = 100


class AnalysisHistoryService:
    """Append-only analysis history per user."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(self, user_id: str, analysis_type: str, result: AnalysisResult) -> None:
        """
        Insert one history row. Cons are stored as warnings, pros as recommendations.

        Raises:
            HistoryWriteError: Insert or commit failed
        """
        row = FoodAnalysisHistory(
            user_id=user_id,
            product_name=result.product_name,
            analysis_type=analysis_type,
            compatibility_score=result.compatibility_score,
            interaction_level=result.interaction_level.value,
            warnings=list(result.cons),
            recommendations=list(result.pros),
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except (SQLAlchemyError, OSError) as exc:
            await self.session.rollback()
            raise HistoryWriteError(str(exc)) from exc

    async def recent(self, user_id: str, limit: int = 20) -> list[HistoryEntry]:
        """Most recent analyses first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        stmt = (
            select(FoodAnalysisHistory)
            .where(FoodAnalysisHistory.user_id == user_id)
            .order_by(FoodAnalysisHistory.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [
            HistoryEntry(
                product_name=row.product_name,
                analysis_type=row.analysis_type,
                compatibility_score=row.compatibility_score,
                interaction_level=row.interaction_level,
                warnings=list(row.warnings or []),
                recommendations=list(row.recommendations or []),
                created_at=row.created_at,
            )
            for row in result.scalars().all()
        ]
