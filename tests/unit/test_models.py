"""Unit tests for Pydantic models"""
import pytest
from datetime import date, datetime, timezone
from pydantic import ValidationError

from guardian_engine.models.energy import (
    EnergyBreakdown,
    EnergyHistoryRecord,
    UserStreakData,
    make_history_record_id,
)
from guardian_engine.models.guardian import GuardianInstance, GuardianMemory, UserGuardianProfile
from guardian_engine.models.report import AnomalyFlags, ReportEvent, ReportMetrics

NOW = datetime(2025, 1, 8, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Energy Models
# ============================================================================

def test_breakdown_total():
    """Test breakdown sum over all sources"""
    breakdown = EnergyBreakdown(daily_report=10, streak_bonus=2, performance_bonus=8, weekly_bonus=50)

    assert breakdown.total == 70
    assert EnergyBreakdown().total == 0


def test_breakdown_rejects_negative():
    with pytest.raises(ValidationError):
        EnergyBreakdown(daily_report=-1)


def test_streak_data_consistency():
    """Test longest >= current and the no-report state"""
    UserStreakData()
    UserStreakData(current_streak=2, longest_streak=5, last_report_date=date(2025, 1, 8))

    with pytest.raises(ValidationError):
        UserStreakData(current_streak=6, longest_streak=5, last_report_date=date(2025, 1, 8))
    with pytest.raises(ValidationError):
        UserStreakData(current_streak=1, longest_streak=1)


def test_history_record_key_and_total():
    """Test record id format and total consistency"""
    record = EnergyHistoryRecord(
        id=make_history_record_id("user-123", date(2025, 1, 8)),
        user_id="user-123",
        date=date(2025, 1, 8),
        breakdown=EnergyBreakdown(daily_report=10),
        total_earned=10,
        streak_day=1,
    )
    assert record.id == "user-123_2025-01-08"

    with pytest.raises(ValidationError):
        EnergyHistoryRecord(
            id="user-123_2025-01-09",
            user_id="user-123",
            date=date(2025, 1, 8),
            breakdown=EnergyBreakdown(daily_report=10),
            total_earned=10,
            streak_day=1,
        )

    with pytest.raises(ValidationError):
        EnergyHistoryRecord(
            id="user-123_2025-01-08",
            user_id="user-123",
            date=date(2025, 1, 8),
            breakdown=EnergyBreakdown(daily_report=10),
            total_earned=12,
            streak_day=1,
        )


# ============================================================================
# Report Models
# ============================================================================

def test_report_event_parses_date():
    event = ReportEvent(user_id="user-123", date="2025-01-08", report_metrics={"views": 10})

    assert event.date == date(2025, 1, 8)
    assert event.report_metrics.views == 10
    assert event.is_modification is False


def test_report_event_rejects_bad_date():
    with pytest.raises(ValidationError):
        ReportEvent(user_id="user-123", date="01/08/2025")


def test_report_metrics_extra_keys():
    """Test team-specific metrics are kept and validated"""
    metrics = ReportMetrics(views=100, signups=3)

    assert metrics.as_dict()["signups"] == 3
    assert metrics.output_score() == 103.0
    assert metrics.is_empty() is False
    assert ReportMetrics().is_empty() is True

    with pytest.raises(ValidationError):
        ReportMetrics(signups=-1)
    with pytest.raises(ValidationError):
        ReportMetrics(signups="many")


def test_report_metrics_rejects_negative_named_field():
    with pytest.raises(ValidationError):
        ReportMetrics(views=-10)


def test_anomaly_flags():
    flags = AnomalyFlags(suspicious_pattern=True)

    assert flags.any_flagged is True
    assert flags.flagged_names() == ["suspicious_pattern"]
    assert AnomalyFlags().any_flagged is False


# ============================================================================
# Guardian Models
# ============================================================================

def test_instance_ignores_stored_stage():
    """Test a stale stage key in stored data is dropped, only energy is kept"""
    instance = GuardianInstance.model_validate({
        "guardian_id": "horyu",
        "unlocked": True,
        "invested_energy": 600,
        "stage": 0,
        "ability_active": False,
    })

    assert instance.invested_energy == 600
    dumped = instance.model_dump()
    assert "stage" not in dumped
    assert "ability_active" not in dumped


def test_locked_instance_cannot_hold_energy():
    with pytest.raises(ValidationError):
        GuardianInstance(guardian_id="horyu", unlocked=False, invested_energy=10)


def test_memory_must_move_forward():
    GuardianMemory(from_stage=0, to_stage=2, timestamp=NOW, invested_at_transition=160)

    with pytest.raises(ValidationError):
        GuardianMemory(from_stage=2, to_stage=2, timestamp=NOW, invested_at_transition=160)


def test_profile_active_guardian_must_be_unlocked():
    """Test the active guardian references an unlocked instance"""
    with pytest.raises(ValidationError):
        UserGuardianProfile(user_id="user-123", active_guardian_id="horyu")

    profile = UserGuardianProfile(
        user_id="user-123",
        guardians={"horyu": GuardianInstance(guardian_id="horyu", unlocked=True, unlocked_at=NOW)},
        active_guardian_id="horyu",
    )
    assert profile.is_unlocked("horyu")
    assert not profile.is_unlocked("hanase")
    assert [g.guardian_id for g in profile.unlocked_guardians()] == ["horyu"]


def test_profile_guardian_keys_match_ids():
    with pytest.raises(ValidationError):
        UserGuardianProfile(
            user_id="user-123",
            guardians={"hanase": GuardianInstance(guardian_id="horyu", unlocked=True)},
        )


def test_profile_json_round_trip(profile_factory):
    """Test stored JSON (with derived fields) loads back to the same profile"""
    profile = profile_factory(current=40, guardians={"horyu": 160, "hanase": 0})

    restored = UserGuardianProfile.model_validate_json(profile.model_dump_json())

    assert restored == profile
