"""
Medication Service - Read access to a user's medication profile.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flikkt.db.models import UserMedication
from flikkt.exceptions import MedicationFetchError
from flikkt.models.domain import Medication


class MedicationService:
    """Loads medications for analysis. The profile itself is edited elsewhere."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_user(self, user_id: str) -> list[Medication]:
        """
        Get the user's medications in insertion order.

        Raises:
            MedicationFetchError: Query failed
        """
        stmt = (
            select(UserMedication)
            .where(UserMedication.user_id == user_id)
            .order_by(UserMedication.created_at)
        )
        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except (SQLAlchemyError, OSError) as exc:
            raise MedicationFetchError(user_id, str(exc)) from exc

        return [
            Medication(
                name=row.medication_name,
                dosage=row.dosage,
                frequency=row.frequency,
                purpose=row.purpose,
                notes=row.notes,
            )
            for row in rows
        ]
