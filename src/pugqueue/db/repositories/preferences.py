"""Preference repository for database operations."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pugqueue.db.models import Preference

logger = logging.getLogger(__name__)


class PreferenceRepository:
    """Repository for owner-scoped preference values."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: The database session to use
        """
        self.session = session

    async def get(self, owner_id: str, key: str) -> Any | None:
        """Get a stored value.

        Args:
            owner_id: Player ID or "guild"
            key: Preference key

        Returns:
            The stored value or None if nothing is stored
        """
        result = await self.session.execute(
            select(Preference.value).where(
                Preference.owner_id == owner_id,
                Preference.key == key,
            )
        )
        return result.scalar_one_or_none()

    async def put(self, owner_id: str, key: str, value: Any) -> Preference:
        """Create or replace a stored value.

        Args:
            owner_id: Player ID or "guild"
            key: Preference key
            value: JSON-serializable value

        Returns:
            The created or updated Preference record
        """
        result = await self.session.execute(
            select(Preference).where(
                Preference.owner_id == owner_id,
                Preference.key == key,
            )
        )
        existing = result.scalar_one_or_none()

        if existing is not None:
            existing.value = value
            await self.session.flush()
            logger.debug(f"Updated preference {key} of {owner_id}")
            return existing

        record = Preference(owner_id=owner_id, key=key, value=value)
        self.session.add(record)
        await self.session.flush()
        logger.debug(f"Created preference {key} of {owner_id}")
        return record

    async def delete(self, owner_id: str, key: str) -> bool:
        """Delete a stored value.

        Returns:
            True if a value was deleted
        """
        result = await self.session.execute(
            select(Preference).where(
                Preference.owner_id == owner_id,
                Preference.key == key,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            return False
        await self.session.delete(record)
        await self.session.flush()
        return True
