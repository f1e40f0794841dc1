"""Unit tests for GuardianService (guardian_engine/services/guardian_service.py)"""
import pytest
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from prometheus_client import REGISTRY

from guardian_engine.db.memory_store import InMemoryProfileStore
from guardian_engine.exceptions import (
    GuardianNotUnlockedError,
    RecordNotFoundError,
    StorageConflictError,
    ValidationError,
)
from guardian_engine.models.report import Report, ReportEvent, ReportMetrics
from guardian_engine.models.results import LevelInfo, StreakUrgency
from guardian_engine.services.guardian_service import GuardianService

WEDNESDAY = date(2025, 1, 8)
SUNDAY = date(2025, 1, 5)


def sample_value(name, labels=None):
    """Current value of a Prometheus sample (0 if never observed)"""
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class RacingStore(InMemoryProfileStore):
    """Store where another writer commits while every transaction is open"""

    @asynccontextmanager
    async def transaction(self, user_id):
        async with super().transaction(user_id) as tx:
            yield tx
            self._versions[user_id] = self.version(user_id) + 1


# ============================================================================
# Report Processing Tests
# ============================================================================

@pytest.mark.asyncio
async def test_first_report(guardian_service, memory_store, mock_sink, report_event_factory, fixed_now):
    """Test a new user's first report starts the streak and grants energy"""
    event = report_event_factory(WEDNESDAY, views=5000, likes=200)

    outcome = await guardian_service.process_report(event, now=fixed_now)

    assert outcome.accepted is True
    assert outcome.duplicate is False
    assert outcome.streak.streak_day == 1
    assert outcome.breakdown.daily_report == 10
    assert outcome.breakdown.streak_bonus == 0
    assert outcome.breakdown.performance_bonus == 8
    assert outcome.energy_granted == 18
    assert outcome.messages[0] == "Streak started! Day 1 🎉"
    assert "💎 +18 E earned!" in outcome.messages

    profile = await memory_store.get_profile("user-123")
    assert profile.energy.current == 18
    assert profile.energy.total_earned == 18
    assert profile.energy.last_earned_at == fixed_now
    assert profile.streak.current_streak == 1
    assert profile.streak.last_report_date == WEDNESDAY

    history = await memory_store.get_history_range("user-123", WEDNESDAY, WEDNESDAY)
    assert [r.total_earned for r in history] == [18]

    mock_sink.on_energy_granted.assert_awaited_once_with(outcome)
    mock_sink.on_level_up.assert_not_awaited()


@pytest.mark.asyncio
async def test_duplicate_report_is_idempotent(guardian_service, memory_store, report_event_factory, fixed_now):
    """Test the same report twice grants energy once"""
    event = report_event_factory(WEDNESDAY, views=5000, likes=200)

    await guardian_service.process_report(event, now=fixed_now)
    outcome = await guardian_service.process_report(event, now=fixed_now)

    assert outcome.accepted is True
    assert outcome.duplicate is True
    assert outcome.energy_granted == 0
    assert outcome.messages == ["Already reported today. Day 1 🔥"]

    profile = await memory_store.get_profile("user-123")
    assert profile.energy.total_earned == 18
    assert profile.streak.current_streak == 1
    assert len(await memory_store.get_history_range("user-123", WEDNESDAY, WEDNESDAY)) == 1


@pytest.mark.asyncio
async def test_improved_same_day_report_grants_difference(
    guardian_service, memory_store, report_event_factory, fixed_now
):
    """Test a better resubmission credits only the increase"""
    await guardian_service.process_report(
        report_event_factory(WEDNESDAY, views=5000, likes=200), now=fixed_now
    )

    outcome = await guardian_service.process_report(
        report_event_factory(WEDNESDAY, views=10000, likes=200), now=fixed_now
    )

    # performance bonus 8 -> 10
    assert outcome.energy_granted == 2
    assert outcome.record.total_earned == 20

    profile = await memory_store.get_profile("user-123")
    history = await memory_store.get_history_range("user-123", WEDNESDAY, WEDNESDAY)
    assert profile.energy.total_earned == sum(r.total_earned for r in history) == 20


@pytest.mark.asyncio
async def test_lower_same_day_report_replaces_record(
    guardian_service, memory_store, report_event_factory, fixed_now
):
    """Test the last submission is stored while earned energy is kept"""
    first = await guardian_service.process_report(
        report_event_factory(WEDNESDAY, views=90000), now=fixed_now
    )

    second = await guardian_service.process_report(
        report_event_factory(WEDNESDAY, views=100), now=fixed_now
    )

    assert first.breakdown.performance_bonus == 30
    assert second.energy_granted == 0
    assert second.record.breakdown == second.breakdown
    assert second.record.total_earned < first.record.total_earned

    history = await memory_store.get_history_range("user-123", WEDNESDAY, WEDNESDAY)
    assert history == [second.record]

    profile = await memory_store.get_profile("user-123")
    assert profile.energy.total_earned == first.record.total_earned
    assert profile.energy.current == first.record.total_earned


@pytest.mark.asyncio
async def test_edited_report_is_counted(guardian_service, report_event_factory, fixed_now):
    """Test an edit of an earlier report is echoed and counted"""
    await guardian_service.process_report(report_event_factory(WEDNESDAY, views=100), now=fixed_now)
    edits_before = sample_value("guardian_report_modifications_total")

    outcome = await guardian_service.process_report(
        ReportEvent(
            user_id="user-123",
            date=WEDNESDAY,
            report_metrics=ReportMetrics(views=200),
            is_modification=True,
        ),
        now=fixed_now
    )

    assert outcome.is_modification is True
    assert outcome.duplicate is True
    assert sample_value("guardian_report_modifications_total") == edits_before + 1


@pytest.mark.asyncio
async def test_empty_report_not_accepted(guardian_service, memory_store, mock_sink, report_event_factory, fixed_now):
    """Test an all-zero report changes nothing"""
    outcome = await guardian_service.process_report(report_event_factory(WEDNESDAY), now=fixed_now)

    assert outcome.accepted is False
    assert outcome.energy_granted == 0
    assert outcome.streak.streak_day == 0
    assert await memory_store.get_profile("user-123") is None
    assert memory_store.version("user-123") == 0
    mock_sink.on_energy_granted.assert_not_awaited()


@pytest.mark.asyncio
async def test_backdated_report_rejected(guardian_service, memory_store, report_event_factory, fixed_now):
    """Test a report older than the last report is refused without writes"""
    await guardian_service.process_report(report_event_factory(WEDNESDAY, views=100), now=fixed_now)
    rejected_before = sample_value("guardian_reports_processed_total", {"status": "rejected"})

    with pytest.raises(ValidationError):
        await guardian_service.process_report(
            report_event_factory(WEDNESDAY - timedelta(days=1), views=100), now=fixed_now
        )

    assert sample_value("guardian_reports_processed_total", {"status": "rejected"}) == rejected_before + 1
    assert memory_store.version("user-123") == 1
    profile = await memory_store.get_profile("user-123")
    assert profile.streak.last_report_date == WEDNESDAY


@pytest.mark.asyncio
async def test_gap_resets_streak(guardian_service, report_event_factory, fixed_now):
    """Test reporting after a missed day starts over at day 1"""
    for day in (1, 2, 3):
        await guardian_service.process_report(report_event_factory(date(2025, 1, day), views=100), now=fixed_now)

    outcome = await guardian_service.process_report(report_event_factory(date(2025, 1, 6), views=100), now=fixed_now)

    assert outcome.streak.is_broken is True
    assert outcome.streak.next.current_streak == 1
    assert outcome.streak.next.longest_streak == 3
    assert outcome.messages[0].startswith("Streak reset. Previous: 3 days.")


@pytest.mark.asyncio
async def test_weekly_bonus_on_full_week(guardian_service, report_event_factory, fixed_now):
    """Test Sunday report after Monday-Saturday reports earns the weekly bonus"""
    for offset in range(6, 0, -1):
        await guardian_service.process_report(
            report_event_factory(SUNDAY - timedelta(days=offset), views=1), now=fixed_now
        )

    outcome = await guardian_service.process_report(report_event_factory(SUNDAY, views=1), now=fixed_now)

    assert outcome.streak.streak_day == 7
    assert outcome.breakdown.weekly_bonus == 50
    assert outcome.breakdown.streak_bonus == 2
    assert outcome.energy_granted == 62


@pytest.mark.asyncio
async def test_no_weekly_bonus_with_missing_day(guardian_service, report_event_factory, fixed_now):
    """Test a gap in the week forfeits the weekly bonus"""
    for offset in (6, 5, 4, 2, 1):
        await guardian_service.process_report(
            report_event_factory(SUNDAY - timedelta(days=offset), views=1), now=fixed_now
        )

    outcome = await guardian_service.process_report(report_event_factory(SUNDAY, views=1), now=fixed_now)

    assert outcome.breakdown.weekly_bonus == 0


@pytest.mark.asyncio
async def test_level_up_notifies_sink(
    guardian_service, memory_store, mock_sink, profile_factory, seed_profile, report_event_factory, fixed_now
):
    """Test crossing a level boundary is reported and sent to the sink"""
    await seed_profile(profile_factory(current=195))

    outcome = await guardian_service.process_report(
        report_event_factory(WEDNESDAY, views=5000, likes=200), now=fixed_now
    )

    assert outcome.previous_level == 1
    assert outcome.new_level == 2
    assert outcome.leveled_up is True
    assert any("LEVEL UP" in m for m in outcome.messages)

    mock_sink.on_level_up.assert_awaited_once()
    user_id, previous_level, level = mock_sink.on_level_up.await_args.args
    assert (user_id, previous_level) == ("user-123", 1)
    assert isinstance(level, LevelInfo)
    assert level.level == 2


@pytest.mark.asyncio
async def test_failing_sink_does_not_undo_report(
    guardian_service, memory_store, mock_sink, report_event_factory, fixed_now
):
    """Test a sink error is logged while the committed grant stays"""
    mock_sink.on_energy_granted.side_effect = RuntimeError("dashboard down")

    outcome = await guardian_service.process_report(report_event_factory(WEDNESDAY, views=100), now=fixed_now)

    assert outcome.accepted is True
    profile = await memory_store.get_profile("user-123")
    assert profile.energy.total_earned == outcome.energy_granted


@pytest.mark.asyncio
async def test_lost_race_raises_conflict(mock_sink, energy_rules, report_event_factory, fixed_now):
    """Test a concurrent commit aborts the report with no partial writes"""
    store = RacingStore()
    service = GuardianService(store, mock_sink, rules=energy_rules)
    conflicts_before = sample_value("guardian_storage_conflicts_total", {"operation": "process_report"})

    with pytest.raises(StorageConflictError):
        await service.process_report(report_event_factory(WEDNESDAY, views=100), now=fixed_now)

    assert await store.get_profile("user-123") is None
    assert await store.get_history_range("user-123", WEDNESDAY, WEDNESDAY) == []
    assert sample_value("guardian_storage_conflicts_total", {"operation": "process_report"}) == conflicts_before + 1
    mock_sink.on_energy_granted.assert_not_awaited()


# ============================================================================
# Guardian Operation Tests
# ============================================================================

@pytest.mark.asyncio
async def test_invest_energy(guardian_service, memory_store, mock_sink, profile_factory, seed_profile, fixed_now):
    """Test investment persists and evolution reaches the sink"""
    await seed_profile(profile_factory(current=200, guardians={"horyu": 0}))

    result = await guardian_service.invest_energy("user-123", "horyu", 160, now=fixed_now)

    assert result.evolved is True
    assert result.new_stage == 2
    stored = await memory_store.get_profile("user-123")
    assert stored.energy.current == 40
    assert stored.guardians["horyu"].invested_energy == 160
    assert stored.energy.total_earned == 200
    mock_sink.on_evolution.assert_awaited_once_with("user-123", result)


@pytest.mark.asyncio
async def test_invest_nothing_available_writes_nothing(
    guardian_service, memory_store, profile_factory, seed_profile, fixed_now
):
    """Test an investment clamped to zero leaves storage untouched"""
    await seed_profile(profile_factory(current=0, guardians={"horyu": 10}))
    version = memory_store.version("user-123")

    result = await guardian_service.invest_energy("user-123", "horyu", 50, now=fixed_now)

    assert result.actual_invested == 0
    assert memory_store.version("user-123") == version


@pytest.mark.asyncio
async def test_invest_without_profile(guardian_service):
    with pytest.raises(RecordNotFoundError):
        await guardian_service.invest_energy("nobody", "horyu", 10)


@pytest.mark.asyncio
async def test_invest_locked_guardian(guardian_service, profile_factory, seed_profile):
    await seed_profile(profile_factory(current=100, guardians={"horyu": 0}))

    with pytest.raises(GuardianNotUnlockedError):
        await guardian_service.invest_energy("user-123", "kitama", 10)


@pytest.mark.asyncio
async def test_unlock_first_guardian(guardian_service, memory_store, mock_sink, fixed_now):
    """Test a brand new user can pick a free starter before reporting"""
    result = await guardian_service.unlock_guardian("user-123", "hanase", now=fixed_now)

    assert result.success is True
    stored = await memory_store.get_profile("user-123")
    assert stored.active_guardian_id == "hanase"
    assert stored.energy.current == 0
    mock_sink.on_unlock.assert_awaited_once_with("user-123", result)


@pytest.mark.asyncio
async def test_unlock_refused_writes_nothing(
    guardian_service, memory_store, mock_sink, profile_factory, seed_profile, fixed_now
):
    """Test a refused unlock is returned, not raised, and not stored"""
    await seed_profile(profile_factory(current=100, guardians={"horyu": 30}))
    version = memory_store.version("user-123")

    result = await guardian_service.unlock_guardian("user-123", "shishimaru", now=fixed_now)

    assert result.success is False
    assert result.reason == "Grow Fire Dragon to Juvenile (stage 2) first"
    assert memory_store.version("user-123") == version
    mock_sink.on_unlock.assert_not_awaited()


@pytest.mark.asyncio
async def test_switch_active_guardian(guardian_service, memory_store, profile_factory, seed_profile):
    await seed_profile(profile_factory(guardians={"horyu": 0, "hanase": 0}))

    updated = await guardian_service.switch_active_guardian("user-123", "hanase")

    assert updated.active_guardian_id == "hanase"
    assert (await memory_store.get_profile("user-123")).active_guardian_id == "hanase"


# ============================================================================
# Read Side Tests
# ============================================================================

@pytest.mark.asyncio
async def test_get_profile_unknown_user(guardian_service, memory_store):
    """Test unknown users read as an empty profile without being stored"""
    profile = await guardian_service.get_profile("new-user")

    assert profile.user_id == "new-user"
    assert profile.energy.total_earned == 0
    assert await memory_store.get_profile("new-user") is None


@pytest.mark.asyncio
async def test_get_level(guardian_service, profile_factory, seed_profile):
    await seed_profile(profile_factory(current=0, total_earned=850))

    level = await guardian_service.get_level("user-123")

    assert level.level == 5
    assert level.title == "Apprentice"


@pytest.mark.asyncio
async def test_get_streak_warning(guardian_service, report_event_factory, fixed_now):
    """Test a streak that will break at midnight warns critically"""
    await guardian_service.process_report(report_event_factory(date(2025, 1, 7), views=100), now=fixed_now)

    warning = await guardian_service.get_streak_warning(
        "user-123", now=datetime(2025, 1, 8, 20, 0, tzinfo=timezone.utc)
    )

    assert warning.should_warn is True
    assert warning.urgency == StreakUrgency.CRITICAL


@pytest.mark.asyncio
async def test_get_history_summary(guardian_service, report_event_factory, fixed_now):
    """Test summary over the window ending at end_date"""
    for day in (6, 7, 8):
        await guardian_service.process_report(report_event_factory(date(2025, 1, day), views=100), now=fixed_now)

    summary = await guardian_service.get_history_summary("user-123", WEDNESDAY, days=2)

    assert summary.period_days == 2
    assert [r.date for r in summary.records] == [date(2025, 1, 7), date(2025, 1, 8)]
    assert summary.total_earned == 20
    assert summary.current_streak == 3


@pytest.mark.asyncio
async def test_get_history_summary_rejects_empty_window(guardian_service):
    with pytest.raises(ValidationError):
        await guardian_service.get_history_summary("user-123", WEDNESDAY, days=0)


@pytest.mark.asyncio
async def test_review_anomalies(guardian_service, memory_store, profile_factory, seed_profile):
    """Test review uses the active guardian's stage and changes nothing"""
    await seed_profile(profile_factory(current=400, guardians={"horyu": 600}))
    version = memory_store.version("user-123")
    reports = [
        Report(date=date(2025, 1, 1) + timedelta(days=n), metrics=ReportMetrics(views=views))
        for n, views in enumerate([1000, 1100, 1200, 100, 110, 120])
    ]

    review = await guardian_service.review_anomalies("user-123", reports)

    assert review.current_stage == 3
    assert review.current_energy == 400
    assert review.reports_reviewed == 6
    assert review.flags.high_energy_low_output is True
    assert memory_store.version("user-123") == version
