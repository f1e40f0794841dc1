"""
Energy History Recorder

Daily ledger of energy grants, one record per user per calendar day,
keyed {user_id}_{YYYY-MM-DD}.

Resubmitting a report for a day that already has a record overwrites that
record with the latest submission. Only growth of the day's total is
credited again. A lower resubmission credits nothing and is never debited,
so lifetime energy never decreases.
"""

from calendar import monthrange
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from guardian_engine.db.store import ProfileTransaction
from guardian_engine.models.energy import (
    BestDay,
    EnergyBreakdown,
    EnergyHistoryRecord,
    EnergyHistorySummary,
    make_history_record_id,
)
from guardian_engine.utils.datetime_helpers import format_report_date, now_utc

logger = logging.getLogger(__name__)


def build_energy_history_record(
    user_id: str,
    record_date: date,
    breakdown: EnergyBreakdown,
    streak_day: int,
    *,
    existing: Optional[EnergyHistoryRecord] = None,
    now: Optional[datetime] = None
) -> EnergyHistoryRecord:
    """
    Build the record to store for one day

    Args:
        user_id: User the grant belongs to
        record_date: Calendar date of the report
        breakdown: Grant of the report being recorded
        streak_day: Streak day the report counted as
        existing: Record already stored for that day, if any
        now: Write timestamp

    Returns:
        New record, or the replacement of existing (created_at kept)
    """
    now = now or now_utc()
    created_at = existing.created_at if existing is not None else now

    return EnergyHistoryRecord(
        id=make_history_record_id(user_id, record_date),
        user_id=user_id,
        date=record_date,
        breakdown=breakdown,
        total_earned=breakdown.total,
        streak_day=streak_day,
        created_at=created_at,
        updated_at=now,
    )


async def record_energy_history(
    tx: ProfileTransaction,
    user_id: str,
    record_date: date,
    breakdown: EnergyBreakdown,
    streak_day: int,
    *,
    now: Optional[datetime] = None
) -> Tuple[EnergyHistoryRecord, Optional[EnergyHistoryRecord]]:
    """
    Upsert the day's record inside an open transaction

    Returns:
        (stored record, record it replaced or None). Use credited_energy()
        for the amount to add to the user's balance.
    """
    existing = await tx.get_history(record_date)
    record = build_energy_history_record(
        user_id, record_date, breakdown, streak_day, existing=existing, now=now
    )
    await tx.upsert_history(record)

    if existing:
        logger.debug(f"Updated energy history {record.id}: {existing.total_earned} -> {record.total_earned} E")
    else:
        logger.info(f"Recorded energy history {record.id}: {record.total_earned} E")

    return record, existing


def credited_energy(
    record: EnergyHistoryRecord,
    previous: Optional[EnergyHistoryRecord] = None
) -> Dict[str, int]:
    """
    Energy newly earned by an upsert, per source

    A first record credits its whole breakdown. A replacement credits
    max(0, new total - old total), attributed to the sources that grew in
    field order. Values are never negative.
    """
    current = record.breakdown.model_dump()
    if previous is None:
        return current

    before = previous.breakdown.model_dump()
    remaining = max(0, record.total_earned - previous.total_earned)
    credited = {}
    for source, amount in current.items():
        share = min(max(0, amount - before[source]), remaining)
        credited[source] = share
        remaining -= share
    return credited


def calculate_history_summary(
    records: Sequence[EnergyHistoryRecord],
    period_days: Optional[int] = None
) -> EnergyHistorySummary:
    """
    Aggregate a window of history records

    Args:
        records: Records in the window, any order
        period_days: Length of the window in days; defaults to the number of
            records (days with a report)

    Returns:
        EnergyHistorySummary (average rounded to one decimal, best day is the
        earliest day with the highest total)
    """
    ordered = sorted(records, key=lambda r: r.date)
    if not ordered:
        return EnergyHistorySummary(period_days=period_days or 0)

    days = period_days or len(ordered)
    total = sum(r.total_earned for r in ordered)

    best = ordered[0]
    for record in ordered[1:]:
        if record.total_earned > best.total_earned:
            best = record

    return EnergyHistorySummary(
        total_earned=total,
        period_days=days,
        average_per_day=round(total / days, 1),
        best_day=BestDay(date=best.date, amount=best.total_earned),
        current_streak=ordered[-1].streak_day,
        max_streak=max(r.streak_day for r in ordered),
        records=ordered,
    )


def generate_streak_calendar(
    records: Sequence[EnergyHistoryRecord],
    year: int,
    month: int
) -> Dict[str, Dict[str, any]]:
    """
    Per-day calendar data for one month

    Returns:
        {'YYYY-MM-DD': {'reported': bool, 'streak': int, 'earned': int}, ...}
        with an entry for every day of the month
    """
    _, days_in_month = monthrange(year, month)
    calendar: Dict[str, Dict[str, any]] = {
        format_report_date(date(year, month, day)): {"reported": False, "streak": 0, "earned": 0}
        for day in range(1, days_in_month + 1)
    }

    for record in records:
        key = format_report_date(record.date)
        if key in calendar:
            calendar[key] = {
                "reported": True,
                "streak": record.streak_day,
                "earned": record.total_earned,
            }

    return calendar


def generate_achievement_messages(
    summary: EnergyHistorySummary,
    previous_period_total: Optional[int] = None
) -> List[str]:
    """Encouraging highlights of a summary"""
    messages = []

    if summary.best_day:
        messages.append(
            f"🌟 Earned {summary.best_day.amount} E on {format_report_date(summary.best_day.date)}. "
            f"That's your record!"
        )

    if previous_period_total and previous_period_total > 0:
        growth = round((summary.total_earned - previous_period_total) / previous_period_total * 100)
        if growth > 0:
            messages.append(f"📈 +{growth}% versus the previous period!")

    if summary.current_streak >= 7:
        messages.append(f"🔥 {summary.current_streak} days in a row. Keep the flame alive!")

    if summary.average_per_day >= 25:
        messages.append(f"💪 Averaging {summary.average_per_day} E per day. Top-tier pace!")

    return messages
