"""
Scan Usage Service - Monthly scan quota accounting.

Atomicity lives in the increment_scan_usage procedure: it locks the
subscriber row, applies the lazy monthly reset, optionally increments, and
returns the remaining free scans in one statement.
"""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from flikkt.exceptions import ScanUsageError
from flikkt.models.domain import ScanCheck

logger = get_logger(__name__)

_INCREMENT_SCAN_USAGE = text(
    "SELECT scans_remaining, is_subscribed "
    "FROM increment_scan_usage(:p_user_id, :p_product_identified, :p_free_limit)"
)


class ScanUsageService:
    """Reads and charges the per-user monthly scan counter."""

    def __init__(self, session: AsyncSession, free_limit: int) -> None:
        self.session = session
        self.free_limit = free_limit

    async def check(self, user_id: str) -> ScanCheck:
        """Return remaining scans without charging one."""
        return await self._call(user_id, product_identified=False)

    async def record_identified_scan(self, user_id: str) -> ScanCheck:
        """Charge one scan for a successfully identified product."""
        return await self._call(user_id, product_identified=True)

    async def _call(self, user_id: str, product_identified: bool) -> ScanCheck:
        try:
            result = await self.session.execute(
                _INCREMENT_SCAN_USAGE,
                {
                    "p_user_id": user_id,
                    "p_product_identified": product_identified,
                    "p_free_limit": self.free_limit,
                },
            )
            row = result.first()
            await self.session.commit()
        except (SQLAlchemyError, OSError) as exc:
            # asyncpg raises OSError subclasses unwrapped when the server refuses connections
            await self.session.rollback()
            logger.error(
                "scan_usage_procedure_failed",
                user_id=user_id,
                product_identified=product_identified,
                error=str(exc),
            )
            raise ScanUsageError(str(exc)) from exc

        if row is None:
            raise ScanUsageError(f"increment_scan_usage returned no row for {user_id}")

        check = ScanCheck(
            scans_remaining=int(row.scans_remaining),
            is_subscribed=bool(row.is_subscribed),
        )
        logger.info(
            "scan_usage_checked",
            user_id=user_id,
            product_identified=product_identified,
            scans_remaining=check.scans_remaining,
            is_subscribed=check.is_subscribed,
        )
        return check
