"""Energy, streak and energy-history models"""
import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from guardian_engine.utils.datetime_helpers import format_report_date, now_utc


class EnergyBreakdown(BaseModel):
    """Energy earned by a single reporting event, per source"""
    model_config = ConfigDict(frozen=True)

    daily_report: int = Field(default=0, ge=0)
    streak_bonus: int = Field(default=0, ge=0)
    performance_bonus: int = Field(default=0, ge=0)
    weekly_bonus: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.daily_report + self.streak_bonus + self.performance_bonus + self.weekly_bonus


class UserEnergyData(BaseModel):
    """Spendable and lifetime energy of a user"""
    current: int = Field(default=0, ge=0)
    total_earned: int = Field(default=0, ge=0)
    last_earned_at: Optional[datetime] = None


class UserStreakData(BaseModel):
    """Consecutive-day reporting state"""
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_report_date: Optional[date] = None

    @model_validator(mode="after")
    def check_consistency(self) -> "UserStreakData":
        if self.longest_streak < self.current_streak:
            raise ValueError("longest_streak must be >= current_streak")
        if (self.current_streak == 0) != (self.last_report_date is None):
            raise ValueError("current_streak is 0 exactly when no report has been made")
        return self


def make_history_record_id(user_id: str, record_date: date) -> str:
    """Storage key of an energy history record: {user_id}_{YYYY-MM-DD}"""
    return f"{user_id}_{format_report_date(record_date)}"


class EnergyHistoryRecord(BaseModel):
    """One energy ledger entry per user per calendar day"""
    id: str
    user_id: str = Field(..., min_length=1)
    date: dt.date
    breakdown: EnergyBreakdown
    total_earned: int = Field(..., ge=0)
    streak_day: int = Field(..., ge=0)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @model_validator(mode="after")
    def check_key_and_total(self) -> "EnergyHistoryRecord":
        expected_id = make_history_record_id(self.user_id, self.date)
        if self.id != expected_id:
            raise ValueError(f"record id must be {expected_id!r}, got {self.id!r}")
        if self.total_earned != self.breakdown.total:
            raise ValueError("total_earned must equal the sum of the breakdown")
        return self


class BestDay(BaseModel):
    date: dt.date
    amount: int


class EnergyHistorySummary(BaseModel):
    """Aggregate over a window of energy history records"""
    total_earned: int = 0
    period_days: int = 0
    average_per_day: float = 0.0
    best_day: Optional[BestDay] = None
    current_streak: int = 0
    max_streak: int = 0
    records: list[EnergyHistoryRecord] = Field(default_factory=list)
