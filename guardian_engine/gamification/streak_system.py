"""
Daily Reporting Streak System

Tracks consecutive calendar days with at least one valid report.

Rules:
- First report ever: streak starts at 1
- Report on the day after the last report: streak continues (+1)
- Second report on the same day: no change (idempotent)
- Gap of more than one day: streak resets to 1 and is marked broken
- Best streak is kept as longest_streak

Features:
- Pure state transitions (no storage access)
- Advisory streak-break warnings with escalating urgency
- Streak badges at 7/30/100/200/365 days
"""

from typing import List, Optional
from datetime import date, datetime, timedelta
import logging

from guardian_engine.exceptions import ValidationError
from guardian_engine.models.energy import UserStreakData
from guardian_engine.models.results import StreakAdvance, StreakBadge, StreakUrgency, StreakWarning

logger = logging.getLogger(__name__)

# Hours left in the rescue day at which the warning escalates
WARNING_HOURS_REMAINING = 12
CRITICAL_HOURS_REMAINING = 6

STREAK_BADGES: List[StreakBadge] = [
    StreakBadge(id="streak_7", name="Flame of Continuity", days=7, icon="🔥", rarity="common",
                description="Reported 7 days in a row"),
    StreakBadge(id="streak_30", name="Iron Will", days=30, icon="💪", rarity="rare",
                description="Reported 30 days in a row"),
    StreakBadge(id="streak_100", name="Indomitable Evangelist", days=100, icon="⚔️", rarity="epic",
                description="Reported 100 days in a row"),
    StreakBadge(id="streak_200", name="King of Continuity", days=200, icon="👑", rarity="ssr",
                description="Reported 200 days in a row"),
    StreakBadge(id="streak_365", name="Eternal Guardian", days=365, icon="🏆", rarity="legend",
                description="Reported 365 days in a row"),
]


def advance_streak(previous: UserStreakData, report_date: date) -> StreakAdvance:
    """
    Apply one valid report to the streak state

    Args:
        previous: Streak state as of immediately before this report
        report_date: Calendar date of the report

    Returns:
        StreakAdvance with the next state, the streak day this report counts
        as, and whether it set a record or broke the previous streak

    Raises:
        ValidationError: If report_date is before the last recorded report
    """
    last_date = previous.last_report_date
    is_broken = False

    # First report ever
    if last_date is None:
        current = 1

    # Already counted for this day
    elif report_date == last_date:
        logger.debug(f"Duplicate report for {report_date}, streak stays at {previous.current_streak}")
        return StreakAdvance(
            next=previous.model_copy(),
            streak_day=previous.current_streak,
            is_new_record=False,
            is_broken=False,
        )

    elif report_date < last_date:
        raise ValidationError(
            message=f"Report date {report_date} is before the last report {last_date}",
            field="report_date",
            value=report_date.isoformat()
        )

    # Next calendar day: streak continues
    elif report_date == last_date + timedelta(days=1):
        current = previous.current_streak + 1

    # Gap: streak broken, start over
    else:
        gap_days = (report_date - last_date).days
        current = 1
        is_broken = True
        logger.info(
            f"Streak broken after {previous.current_streak} days "
            f"(gap of {gap_days} days before {report_date})"
        )

    next_state = UserStreakData(
        current_streak=current,
        longest_streak=max(previous.longest_streak, current),
        last_report_date=report_date,
    )

    return StreakAdvance(
        next=next_state,
        streak_day=current,
        is_new_record=current > previous.longest_streak,
        is_broken=is_broken,
    )


def get_streak_warning(
    last_report_date: Optional[date],
    now: datetime,
    current_streak: int = 0
) -> StreakWarning:
    """
    Advise the user before an unbroken streak lapses

    A streak survives if a report arrives on the calendar day after
    last_report_date. During that day the urgency escalates as the day runs
    out. The calendar day is taken from now as given, so pass now in the
    user's timezone.

    Args:
        last_report_date: Date of the most recent valid report
        now: Current time
        current_streak: Streak length, used in the message

    Returns:
        StreakWarning (should_warn=False when nothing is at stake)
    """
    if last_report_date is None or current_streak <= 0:
        return StreakWarning(should_warn=False, message="No active streak")

    today = now.date()
    rescue_day = last_report_date + timedelta(days=1)

    if today <= last_report_date:
        return StreakWarning(should_warn=False, message="Already reported today")

    if today > rescue_day:
        return StreakWarning(should_warn=False, message="Streak has already lapsed", hours_remaining=0.0)

    midnight = datetime.combine(rescue_day + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
    hours_remaining = max(0.0, (midnight - now).total_seconds() / 3600)

    if hours_remaining <= CRITICAL_HOURS_REMAINING:
        urgency = StreakUrgency.CRITICAL
        message = (
            f"Only {hours_remaining:.0f}h left! Report now or your "
            f"{current_streak}-day streak resets."
        )
    elif hours_remaining <= WARNING_HOURS_REMAINING:
        urgency = StreakUrgency.WARNING
        message = f"Your {current_streak}-day streak ends tonight. Don't forget to report!"
    else:
        urgency = StreakUrgency.INFO
        message = f"Report today to keep your {current_streak}-day streak going 🔥"

    return StreakWarning(
        should_warn=True,
        urgency=urgency,
        message=message,
        hours_remaining=round(hours_remaining, 2),
    )


def get_earned_streak_badges(streak: int) -> List[StreakBadge]:
    """Badges whose day count the streak has reached"""
    return [badge for badge in STREAK_BADGES if streak >= badge.days]


def get_next_streak_badge(streak: int) -> Optional[StreakBadge]:
    """The next badge to aim for, or None after the last one"""
    return next((badge for badge in STREAK_BADGES if streak < badge.days), None)


def format_streak_message(advance: StreakAdvance, previous: UserStreakData) -> str:
    """
    Format a streak update for display

    Args:
        advance: Result of advance_streak()
        previous: Streak state before the report

    Returns:
        Short user-facing message
    """
    current = advance.next.current_streak

    if advance.is_broken:
        return f"Streak reset. Previous: {previous.current_streak} days. Starting fresh! Day 1 💪"
    if previous.last_report_date is None:
        return "Streak started! Day 1 🎉"
    if current == previous.current_streak:
        return f"Already reported today. Day {current} 🔥"

    message = f"{current}-day streak! 🔥"
    if advance.is_new_record:
        message += " New personal best 🏆"
    badge = next((b for b in STREAK_BADGES if b.days == current), None)
    if badge:
        message += f"\n{badge.icon} {badge.name} badge earned!"
    return message
