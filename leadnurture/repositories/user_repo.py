"""
User (operator) and operator settings repositories.
"""
import uuid
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.core.phone import last_ten_digits
from leadnurture.models.user import User
from leadnurture.models.settings import OperatorSettings
from leadnurture.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(User, session)
    
    async def get_by_sending_number(self, phone_number: str) -> Optional[User]:
        """Operator whose provisioned number matches (by last 10 digits)."""
        suffix = last_ten_digits(phone_number)
        if not suffix:
            return None
        return await self.get_by_field("phone_suffix", suffix)


class OperatorSettingsRepository(BaseRepository[OperatorSettings]):
    """Repository for OperatorSettings operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(OperatorSettings, session)
    
    async def get_for_operator(self, operator_id: Optional[uuid.UUID]) -> Optional[OperatorSettings]:
        if not operator_id:
            return None
        return await self.get_by_field("operator_id", operator_id)
