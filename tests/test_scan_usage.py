"""
Tests for ScanUsageService.

The procedure itself runs in PostgreSQL; these tests cover the call contract
and error mapping with a mocked session.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from flikkt.exceptions import ScanUsageError
from flikkt.models.domain import ScanCheck
from flikkt.services.scan_usage import ScanUsageService

USER_ID = "8b0c3a52-3f6e-4d1e-9a57-2f1d4c6b7e90"


def _procedure_row(scans_remaining: int, is_subscribed: bool) -> MagicMock:
    result = MagicMock()
    result.first = MagicMock(
        return_value=SimpleNamespace(scans_remaining=scans_remaining, is_subscribed=is_subscribed)
    )
    return result


class TestCheck:
    """Tests for check (no charge)."""

    async def test_returns_remaining_scans(self, db_session: AsyncMock):
        db_session.execute.return_value = _procedure_row(3, False)
        service = ScanUsageService(db_session, free_limit=5)

        check = await service.check(USER_ID)

        assert check == ScanCheck(scans_remaining=3, is_subscribed=False)
        assert check.limit_reached is False
        params = db_session.execute.call_args[0][1]
        assert params == {
            "p_user_id": USER_ID,
            "p_product_identified": False,
            "p_free_limit": 5,
        }
        db_session.commit.assert_awaited_once()

    async def test_exhausted_free_user_hits_limit(self, db_session: AsyncMock):
        db_session.execute.return_value = _procedure_row(0, False)

        check = await ScanUsageService(db_session, free_limit=5).check(USER_ID)

        assert check.limit_reached is True

    async def test_subscriber_never_hits_limit(self, db_session: AsyncMock):
        db_session.execute.return_value = _procedure_row(0, True)

        check = await ScanUsageService(db_session, free_limit=5).check(USER_ID)

        assert check.limit_reached is False


class TestRecordIdentifiedScan:
    """Tests for record_identified_scan (charges one scan)."""

    async def test_passes_identified_flag(self, db_session: AsyncMock):
        db_session.execute.return_value = _procedure_row(1, False)

        check = await ScanUsageService(db_session, free_limit=5).record_identified_scan(USER_ID)

        assert check.scans_remaining == 1
        params = db_session.execute.call_args[0][1]
        assert params["p_product_identified"] is True

    async def test_procedure_sql_targets_increment_function(self, db_session: AsyncMock):
        db_session.execute.return_value = _procedure_row(4, False)

        await ScanUsageService(db_session, free_limit=5).record_identified_scan(USER_ID)

        statement = db_session.execute.call_args[0][0]
        assert "increment_scan_usage" in str(statement)


class TestErrors:
    """Tests for error mapping."""

    async def test_database_error_rolls_back(self, db_session: AsyncMock):
        db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(ScanUsageError):
            await ScanUsageService(db_session, free_limit=5).check(USER_ID)

        db_session.rollback.assert_awaited_once()

    async def test_no_row_raises(self, db_session: AsyncMock):
        with pytest.raises(ScanUsageError, match="returned no row"):
            await ScanUsageService(db_session, free_limit=5).check(USER_ID)

    async def test_refused_connection_rolls_back(self, db_session: AsyncMock):
        db_session.execute.side_effect = ConnectionRefusedError(111, "Connect call failed")

        with pytest.raises(ScanUsageError, match="Connect call failed"):
            await ScanUsageService(db_session, free_limit=5).check(USER_ID)

        db_session.rollback.assert_awaited_once()
