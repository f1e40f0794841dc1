"""
Energy Ledger

Computes how much energy a single report earns.

Energy sources (defaults, see EnergyRules):
- Daily report: 10 E for a report with at least one non-zero metric
- Streak bonus (retention curve: fast early reinforcement, slower later):
    Day 1-3:   +0 E
    Day 4-7:   +2 E
    Day 8-14:  +5 E
    Day 15-30: +10 E
    Day 31+:   +20 E
- Performance bonus: base x average goal achievement, capped at 3x base
- Weekly bonus: +50 E on Sunday after reporting on each of the six days before

Every function here is pure: the same inputs always give the same grant.
"""

from bisect import bisect_right
from datetime import date
from typing import Dict, Iterable, Optional, Tuple
import logging
import math

from pydantic import BaseModel, ConfigDict, Field, model_validator

from guardian_engine import config
from guardian_engine.exceptions import ValidationError
from guardian_engine.models.energy import EnergyBreakdown, EnergyHistoryRecord
from guardian_engine.models.report import ReportMetrics
from guardian_engine.utils.datetime_helpers import preceding_days

logger = logging.getLogger(__name__)

# Derived from the multipliers 1.2 / 1.5 / 2.0 / 3.0 on a 10 E base
DEFAULT_STREAK_BONUS_TIERS: Tuple[Tuple[int, int], ...] = (
    (1, 0),
    (4, 2),
    (8, 5),
    (15, 10),
    (31, 20),
)

# Team daily goal per output metric
DEFAULT_DAILY_GOALS: Dict[str, float] = {
    "views": 10000,
    "likes": 100,
    "replies": 10,
}


class StreakBonusTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_day: int = Field(..., ge=1)
    bonus: int = Field(..., ge=0)


class EnergyRules(BaseModel):
    """Tuning constants of the energy grant"""
    model_config = ConfigDict(frozen=True)

    base_daily_report: int = Field(default=10, gt=0)
    streak_bonus_tiers: Tuple[StreakBonusTier, ...] = tuple(
        StreakBonusTier(min_day=d, bonus=b) for d, b in DEFAULT_STREAK_BONUS_TIERS
    )
    daily_goals: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_DAILY_GOALS))
    performance_cap_multiple: int = Field(default=3, ge=0)
    weekly_bonus: int = Field(default=50, ge=0)
    weekly_bonus_weekday: int = Field(default=6, ge=0, le=6)

    @model_validator(mode="after")
    def check_tiers(self) -> "EnergyRules":
        tiers = self.streak_bonus_tiers
        if not tiers or tiers[0].min_day != 1:
            raise ValueError("streak bonus tiers must start at day 1")
        for lower, upper in zip(tiers, tiers[1:]):
            if upper.min_day <= lower.min_day:
                raise ValueError("streak bonus tiers must have strictly increasing start days")
            if upper.bonus < lower.bonus:
                raise ValueError("streak bonus must not decrease with longer streaks")
        for metric, target in self.daily_goals.items():
            if target <= 0:
                raise ValueError(f"daily goal for {metric!r} must be positive")
        return self

    @property
    def performance_cap(self) -> int:
        return self.base_daily_report * self.performance_cap_multiple

    @classmethod
    def from_config(cls) -> "EnergyRules":
        """Build rules from environment configuration"""
        return cls(
            base_daily_report=config.BASE_DAILY_REPORT_ENERGY,
            performance_cap_multiple=config.PERFORMANCE_CAP_MULTIPLE,
            weekly_bonus=config.WEEKLY_BONUS_ENERGY,
            weekly_bonus_weekday=config.WEEKLY_BONUS_WEEKDAY,
        )


def is_valid_report(metrics: ReportMetrics) -> bool:
    """A report counts only if at least one metric is non-zero"""
    return not metrics.is_empty()


def get_streak_bonus(streak_day: int, rules: Optional[EnergyRules] = None) -> int:
    """
    Streak bonus for the given streak day

    Step function over the configured tiers; never decreases as streak_day
    grows. Day 0 (no streak) earns nothing.
    """
    rules = rules or EnergyRules()
    if streak_day <= 0:
        return 0

    starts = [tier.min_day for tier in rules.streak_bonus_tiers]
    index = bisect_right(starts, streak_day) - 1
    return rules.streak_bonus_tiers[index].bonus


def calculate_performance_ratio(metrics: ReportMetrics, daily_goals: Dict[str, float]) -> float:
    """
    Average goal achievement over the team's goal metrics

    Example:
        views 5000 / 10000 and likes 200 / 100 -> (0.5 + 2.0) / 2 = 1.25
    """
    if not daily_goals:
        return 0.0

    values = metrics.as_dict()
    ratios = [values.get(metric, 0) / target for metric, target in daily_goals.items()]
    return sum(ratios) / len(ratios)


def calculate_performance_bonus(metrics: ReportMetrics, rules: Optional[EnergyRules] = None) -> int:
    """Performance bonus, capped so one day cannot exceed the documented maximum"""
    rules = rules or EnergyRules()
    ratio = calculate_performance_ratio(metrics, rules.daily_goals)
    bonus = math.floor(rules.base_daily_report * ratio)
    return max(0, min(bonus, rules.performance_cap))


def calculate_weekly_bonus(
    report_date: date,
    recent_history: Iterable[EnergyHistoryRecord],
    rules: Optional[EnergyRules] = None
) -> int:
    """
    Weekly bonus for a report on the bonus weekday

    Granted only if every day since the previous bonus weekday carries an
    energy history record with a positive total.
    """
    rules = rules or EnergyRules()
    if report_date.weekday() != rules.weekly_bonus_weekday:
        return 0

    reported_days = {r.date for r in recent_history if r.total_earned > 0}
    missing = [d for d in preceding_days(report_date, 6) if d not in reported_days]
    if missing:
        logger.debug(f"No weekly bonus for {report_date}: missing {len(missing)} day(s)")
        return 0
    return rules.weekly_bonus


def grant_energy(
    streak_day: int,
    report_metrics: ReportMetrics,
    recent_history: Iterable[EnergyHistoryRecord],
    *,
    report_date: date,
    rules: Optional[EnergyRules] = None
) -> EnergyBreakdown:
    """
    Compute the energy grant of one report

    Args:
        streak_day: Streak day this report counts as (from advance_streak)
        report_metrics: KPI values of the report
        recent_history: History records of the days before report_date
        report_date: Calendar date of the report
        rules: Tuning constants (defaults if omitted)

    Returns:
        EnergyBreakdown; all zeros for an empty report

    Raises:
        ValidationError: If streak_day is negative
    """
    if streak_day < 0:
        raise ValidationError(message="streak_day must not be negative", field="streak_day", value=streak_day)

    rules = rules or EnergyRules()

    if not is_valid_report(report_metrics):
        logger.debug("Empty report earns no energy")
        return EnergyBreakdown()

    history = list(recent_history)
    breakdown = EnergyBreakdown(
        daily_report=rules.base_daily_report,
        streak_bonus=get_streak_bonus(streak_day, rules),
        performance_bonus=calculate_performance_bonus(report_metrics, rules),
        weekly_bonus=calculate_weekly_bonus(report_date, history, rules),
    )

    logger.debug(
        f"Energy grant for {report_date} (streak day {streak_day}): "
        f"{breakdown.total} E {breakdown.model_dump()}"
    )
    return breakdown


def estimate_daily_energy(streak_day: int, rules: Optional[EnergyRules] = None) -> int:
    """Energy of a plain daily report at the given streak day, without bonuses for output"""
    rules = rules or EnergyRules()
    return rules.base_daily_report + get_streak_bonus(max(streak_day, 1), rules)
