"""Global test fixtures and utilities for guardian-engine tests"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import date, datetime, timezone
from typing import Dict, Optional

from guardian_engine.db.memory_store import InMemoryProfileStore
from guardian_engine.gamification.energy_system import EnergyRules
from guardian_engine.gamification.guardian_registry import GuardianRegistry
from guardian_engine.models.energy import (
    EnergyBreakdown,
    EnergyHistoryRecord,
    UserEnergyData,
    UserStreakData,
    make_history_record_id,
)
from guardian_engine.models.guardian import GuardianInstance, UserGuardianProfile
from guardian_engine.models.report import ReportEvent, ReportMetrics
from guardian_engine.services.energy_sink import EnergySink
from guardian_engine.services.guardian_service import GuardianService


# ============================================================================
# Time Fixtures
# ============================================================================

# 2025-01-05 is a Sunday
SUNDAY = date(2025, 1, 5)
WEDNESDAY = date(2025, 1, 8)
FIXED_NOW = datetime(2025, 1, 8, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    """Fixed processing timestamp"""
    return FIXED_NOW


# ============================================================================
# User & Profile Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


def build_profile(
    user_id: str = "user-123",
    current: int = 0,
    total_earned: Optional[int] = None,
    guardians: Optional[Dict[str, int]] = None,
    active: Optional[str] = None,
    streak: Optional[UserStreakData] = None
) -> UserGuardianProfile:
    """Profile with the given guardians unlocked at the given invested energy"""
    guardians = guardians or {}
    instances = {
        guardian_id: GuardianInstance(
            guardian_id=guardian_id,
            unlocked=True,
            unlocked_at=FIXED_NOW,
            invested_energy=invested,
        )
        for guardian_id, invested in guardians.items()
    }
    if active is None and instances:
        active = next(iter(instances))

    invested_total = sum(guardians.values())
    return UserGuardianProfile(
        user_id=user_id,
        energy=UserEnergyData(
            current=current,
            total_earned=total_earned if total_earned is not None else current + invested_total,
        ),
        streak=streak or UserStreakData(),
        guardians=instances,
        active_guardian_id=active,
        registered_at=FIXED_NOW,
    )


@pytest.fixture
def profile_factory():
    """Factory for user profiles"""
    return build_profile


def build_record(
    record_date: date,
    total: int = 10,
    streak_day: int = 1,
    user_id: str = "user-123"
) -> EnergyHistoryRecord:
    """History record whose whole total comes from the daily report field"""
    return EnergyHistoryRecord(
        id=make_history_record_id(user_id, record_date),
        user_id=user_id,
        date=record_date,
        breakdown=EnergyBreakdown(daily_report=total),
        total_earned=total,
        streak_day=streak_day,
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )


@pytest.fixture
def record_factory():
    """Factory for energy history records"""
    return build_record


@pytest.fixture
def report_event_factory(test_user_id):
    """Factory for report events"""
    def _make(report_date, user_id: str = test_user_id, **metrics) -> ReportEvent:
        return ReportEvent(
            user_id=user_id,
            date=report_date,
            report_metrics=ReportMetrics(**metrics),
        )
    return _make


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def energy_rules():
    """Default energy rules, independent of the environment"""
    return EnergyRules()


@pytest.fixture
def short_stage_registry():
    """Registry with the compact stage table 0/50/150/350/700"""
    return GuardianRegistry.with_thresholds([0, 50, 150, 350, 700])


@pytest.fixture
def memory_store():
    """Fresh in-memory profile store"""
    return InMemoryProfileStore()


@pytest.fixture
def mock_sink():
    """EnergySink with every hook mocked"""
    return AsyncMock(spec=EnergySink)


@pytest.fixture
def guardian_service(memory_store, mock_sink, energy_rules):
    """GuardianService over an in-memory store"""
    return GuardianService(memory_store, mock_sink, rules=energy_rules)


@pytest.fixture
def seed_profile(memory_store):
    """Write a profile straight into the in-memory store"""
    async def _seed(profile: UserGuardianProfile) -> None:
        async with memory_store.transaction(profile.user_id) as tx:
            await tx.save_profile(profile)
    return _seed


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_cursor():
    """Mock database cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock database connection whose cursor() yields mock_db_cursor"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = mock_db_cursor
    return conn


@pytest.fixture
def mock_database(mock_db_connection):
    """Mock Database whose connection() yields mock_db_connection"""
    db = MagicMock()
    db.connection.return_value.__aenter__.return_value = mock_db_connection
    db.close_pool = AsyncMock()
    return db
