"""
In-memory profile store

Used by tests and single-process embeddings. Nothing is persisted across
restarts.

Concurrency: optimistic. Each transaction remembers the profile version it
started from; at commit the version must be unchanged, otherwise
StorageConflictError is raised and none of the transaction's writes apply.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import AsyncIterator, Dict, List, Optional

from guardian_engine.db.store import ProfileStore, ProfileTransaction
from guardian_engine.exceptions import StorageConflictError
from guardian_engine.models.energy import EnergyHistoryRecord
from guardian_engine.models.guardian import UserGuardianProfile

logger = logging.getLogger(__name__)


class InMemoryTransaction(ProfileTransaction):
    """Buffers writes until the owning store commits them"""

    def __init__(self, store: "InMemoryProfileStore", user_id: str, base_version: int):
        super().__init__(user_id)
        self.base_version = base_version
        self._store = store
        self._profile: Optional[UserGuardianProfile] = None
        self._history: Dict[str, EnergyHistoryRecord] = {}

    @property
    def dirty(self) -> bool:
        return self._profile is not None or bool(self._history)

    async def load_profile(self) -> Optional[UserGuardianProfile]:
        if self._profile is not None:
            return self._profile.model_copy(deep=True)
        stored = self._store._profiles.get(self.user_id)
        return stored.model_copy(deep=True) if stored else None

    async def save_profile(self, profile: UserGuardianProfile) -> None:
        self._profile = profile.model_copy(deep=True)

    async def get_history(self, record_date: date) -> Optional[EnergyHistoryRecord]:
        return self._merged_history().get(record_date)

    async def recent_history(self, end_date: date, days: int) -> List[EnergyHistoryRecord]:
        start = end_date - timedelta(days=days)
        records = self._merged_history()
        return [records[d] for d in sorted(records) if start <= d < end_date]

    async def upsert_history(self, record: EnergyHistoryRecord) -> None:
        self._history[record.id] = record.model_copy()

    def _merged_history(self) -> Dict[date, EnergyHistoryRecord]:
        stored = self._store._history.get(self.user_id, {})
        merged = {**stored, **self._history}
        return {r.date: r for r in merged.values()}


class InMemoryProfileStore(ProfileStore):
    """Dict-backed ProfileStore with optimistic per-user versioning"""

    def __init__(self):
        self._profiles: Dict[str, UserGuardianProfile] = {}
        self._history: Dict[str, Dict[str, EnergyHistoryRecord]] = {}
        self._versions: Dict[str, int] = {}
        self._commit_lock = asyncio.Lock()

    def version(self, user_id: str) -> int:
        """Number of commits applied for the user"""
        return self._versions.get(user_id, 0)

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[InMemoryTransaction]:
        tx = InMemoryTransaction(self, user_id, self.version(user_id))
        yield tx
        await self._commit(tx)

    async def _commit(self, tx: InMemoryTransaction) -> None:
        async with self._commit_lock:
            current = self.version(tx.user_id)
            if current != tx.base_version:
                raise StorageConflictError(
                    f"Profile of {tx.user_id} changed during transaction "
                    f"(version {tx.base_version} -> {current})",
                    user_id=tx.user_id,
                    operation="commit",
                )

            if not tx.dirty:
                return

            if tx._profile is not None:
                self._profiles[tx.user_id] = tx._profile
            if tx._history:
                self._history.setdefault(tx.user_id, {}).update(tx._history)
            self._versions[tx.user_id] = current + 1
            logger.debug(f"Committed transaction for {tx.user_id} (version {current + 1})")

    async def get_profile(self, user_id: str) -> Optional[UserGuardianProfile]:
        stored = self._profiles.get(user_id)
        return stored.model_copy(deep=True) if stored else None

    async def get_history_range(self, user_id: str, start: date, end: date) -> List[EnergyHistoryRecord]:
        records = self._history.get(user_id, {}).values()
        return sorted((r for r in records if start <= r.date <= end), key=lambda r: r.date)
