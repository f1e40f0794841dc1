"""
Storage interfaces for the guardian engine

Every state transition of a user runs as one read-modify-write inside
ProfileStore.transaction(user_id). Adapters:
- InMemoryProfileStore (db/memory_store.py): optimistic version check
- PostgresProfileStore (db/queries/guardian.py): row lock on the profile

The engine itself never retries; a StorageConflictError is surfaced to the
caller, who may retry the whole operation.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncContextManager, List, Optional
import logging

from guardian_engine.models.energy import EnergyHistoryRecord
from guardian_engine.models.guardian import UserGuardianProfile

logger = logging.getLogger(__name__)


class ProfileTransaction(ABC):
    """
    Unit of work scoped to one user

    Writes become visible to other transactions only when the surrounding
    context manager exits without an exception.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id

    @abstractmethod
    async def load_profile(self) -> Optional[UserGuardianProfile]:
        """Current profile, or None for a user never seen before"""
        pass

    @abstractmethod
    async def save_profile(self, profile: UserGuardianProfile) -> None:
        pass

    @abstractmethod
    async def get_history(self, record_date: date) -> Optional[EnergyHistoryRecord]:
        """History record of one calendar day"""
        pass

    @abstractmethod
    async def recent_history(self, end_date: date, days: int) -> List[EnergyHistoryRecord]:
        """
        History records of the `days` calendar days before end_date

        end_date itself is excluded. Records are ordered oldest first.
        """
        pass

    @abstractmethod
    async def upsert_history(self, record: EnergyHistoryRecord) -> None:
        """Insert or overwrite the record stored under record.id"""
        pass


class ProfileStore(ABC):
    """Transactional per-user storage of profiles and energy history"""

    @abstractmethod
    def transaction(self, user_id: str) -> AsyncContextManager[ProfileTransaction]:
        """
        Open a unit of work for one user

        Usage:
            async with store.transaction(user_id) as tx:
                profile = await tx.load_profile()
                ...
                await tx.save_profile(profile)

        Raises:
            StorageConflictError: If a concurrent transaction for the same
                user committed first
        """
        pass

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[UserGuardianProfile]:
        """Read-only snapshot of a profile"""
        pass

    @abstractmethod
    async def get_history_range(self, user_id: str, start: date, end: date) -> List[EnergyHistoryRecord]:
        """History records with start <= date <= end, oldest first"""
        pass

    async def close(self) -> None:
        """Release held resources"""
        pass
