"""Guardian profile and energy history queries (PostgreSQL)"""
import logging
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import AsyncIterator, List, Optional

import psycopg

from guardian_engine.db.connection import Database
from guardian_engine.db.store import ProfileStore, ProfileTransaction
from guardian_engine.exceptions import wrap_external_exception
from guardian_engine.models.energy import EnergyBreakdown, EnergyHistoryRecord
from guardian_engine.models.guardian import UserGuardianProfile

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = "id, user_id, record_date, breakdown, total_earned, streak_day, created_at, updated_at"


def _row_to_history(row: dict) -> EnergyHistoryRecord:
    return EnergyHistoryRecord(
        id=row["id"],
        user_id=row["user_id"],
        date=row["record_date"],
        breakdown=EnergyBreakdown.model_validate(row["breakdown"]),
        total_earned=row["total_earned"],
        streak_day=row["streak_day"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresTransaction(ProfileTransaction):
    """
    Unit of work on one connection-level transaction

    load_profile takes a row lock (SELECT ... FOR UPDATE), so a second
    transaction for the same user waits until this one commits.
    """

    def __init__(self, cur: psycopg.AsyncCursor, user_id: str):
        super().__init__(user_id)
        self._cur = cur
        self._exists: Optional[bool] = None

    async def load_profile(self) -> Optional[UserGuardianProfile]:
        await self._cur.execute(
            """
            SELECT profile
            FROM guardian_profiles
            WHERE user_id = %s
            FOR UPDATE
            """,
            (self.user_id,)
        )
        row = await self._cur.fetchone()
        self._exists = row is not None
        if not row:
            return None
        return UserGuardianProfile.model_validate(row["profile"])

    async def save_profile(self, profile: UserGuardianProfile) -> None:
        if self._exists is None:
            await self.load_profile()

        if self._exists:
            await self._cur.execute(
                """
                UPDATE guardian_profiles
                SET profile = %s::jsonb,
                    total_earned = %s,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = %s
                """,
                (profile.model_dump_json(), profile.energy.total_earned, self.user_id)
            )
        else:
            # Plain INSERT: two first-time writers collide on the primary key
            await self._cur.execute(
                """
                INSERT INTO guardian_profiles (user_id, profile, total_earned)
                VALUES (%s, %s::jsonb, %s)
                """,
                (self.user_id, profile.model_dump_json(), profile.energy.total_earned)
            )
            self._exists = True

    async def get_history(self, record_date: date) -> Optional[EnergyHistoryRecord]:
        await self._cur.execute(
            f"""
            SELECT {HISTORY_COLUMNS}
            FROM energy_history
            WHERE user_id = %s AND record_date = %s
            """,
            (self.user_id, record_date)
        )
        row = await self._cur.fetchone()
        return _row_to_history(row) if row else None

    async def recent_history(self, end_date: date, days: int) -> List[EnergyHistoryRecord]:
        await self._cur.execute(
            f"""
            SELECT {HISTORY_COLUMNS}
            FROM energy_history
            WHERE user_id = %s
              AND record_date >= %s
              AND record_date < %s
            ORDER BY record_date ASC
            """,
            (self.user_id, end_date - timedelta(days=days), end_date)
        )
        rows = await self._cur.fetchall()
        return [_row_to_history(row) for row in rows]

    async def upsert_history(self, record: EnergyHistoryRecord) -> None:
        await self._cur.execute(
            """
            INSERT INTO energy_history
                (id, user_id, record_date, breakdown, total_earned, streak_day, created_at, updated_at)
            VALUES (%s, %s, %s, %s::jsonb, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE
            SET breakdown = EXCLUDED.breakdown,
                total_earned = EXCLUDED.total_earned,
                streak_day = EXCLUDED.streak_day,
                updated_at = EXCLUDED.updated_at
            """,
            (
                record.id,
                record.user_id,
                record.date,
                record.breakdown.model_dump_json(),
                record.total_earned,
                record.streak_day,
                record.created_at,
                record.updated_at,
            )
        )


class PostgresProfileStore(ProfileStore):
    """ProfileStore backed by the guardian_profiles and energy_history tables"""

    def __init__(self, db: Database):
        self.db = db

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[PostgresTransaction]:
        try:
            async with self.db.connection() as conn:
                async with conn.transaction():
                    async with conn.cursor() as cur:
                        yield PostgresTransaction(cur, user_id)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="profile_transaction", user_id=user_id)

    async def get_profile(self, user_id: str) -> Optional[UserGuardianProfile]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT profile FROM guardian_profiles WHERE user_id = %s",
                        (user_id,)
                    )
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_profile", user_id=user_id)

        return UserGuardianProfile.model_validate(row["profile"]) if row else None

    async def get_history_range(self, user_id: str, start: date, end: date) -> List[EnergyHistoryRecord]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {HISTORY_COLUMNS}
                        FROM energy_history
                        WHERE user_id = %s
                          AND record_date BETWEEN %s AND %s
                        ORDER BY record_date ASC
                        """,
                        (user_id, start, end)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_history_range", user_id=user_id)

        return [_row_to_history(row) for row in rows]

    async def close(self) -> None:
        await self.db.close_pool()
