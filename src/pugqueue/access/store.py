"""Owner-scoped preference store holding access configs and lists.

Values are read and written whole: callers fetch the mapping under a key,
change it, and store it back.
"""

import copy
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from pugqueue.errors import RemoteServiceError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

ACCESS_CONFIGS_KEY = "lobby_access_configs"
ACCESS_LISTS_KEY = "lobby_access_lists"


class PreferenceStore:
    """Key-value store scoped by owner.

    Backed by the ``preferences`` table when a session factory is given,
    otherwise by an in-memory dict.
    """

    def __init__(
        self,
        session_factory: "async_sessionmaker[AsyncSession] | None" = None,
    ) -> None:
        """Initialize the store.

        Args:
            session_factory: Optional SQLAlchemy async session factory. If not
                provided, values are kept in memory only.
        """
        self._session_factory = session_factory
        self._memory: dict[tuple[str, str], Any] = {}

    async def get_data(self, owner_id: str, key: str) -> Any | None:
        """Get the value stored under ``key`` for an owner.

        Raises:
            RemoteServiceError: If the database can't be read
        """
        if self._session_factory is None:
            return copy.deepcopy(self._memory.get((owner_id, key)))

        from pugqueue.db.repositories.preferences import PreferenceRepository

        try:
            async with self._session_factory() as session:
                return await PreferenceRepository(session).get(owner_id, key)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read {key} of {owner_id}: {e}")
            raise RemoteServiceError(f"Could not read {key}") from e

    async def store_data(self, owner_id: str, key: str, value: Any) -> None:
        """Replace the value stored under ``key`` for an owner.

        Raises:
            RemoteServiceError: If the database can't be written
        """
        if self._session_factory is None:
            self._memory[(owner_id, key)] = copy.deepcopy(value)
            return

        from pugqueue.db.repositories.preferences import PreferenceRepository

        try:
            async with self._session_factory() as session:
                await PreferenceRepository(session).put(owner_id, key, value)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store {key} of {owner_id}: {e}")
            raise RemoteServiceError(f"Could not store {key}") from e
