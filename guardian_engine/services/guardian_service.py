"""
GuardianService - Guardian Engine Business Logic

Runs every state transition of a user as one read-modify-write inside
ProfileStore.transaction(user_id), then notifies the EnergySink.

Report flow:
    ReportEvent -> streak -> energy grant -> history upsert -> balance/level -> sink
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Optional, Sequence

from guardian_engine import config
from guardian_engine.db.store import ProfileStore, ProfileTransaction
from guardian_engine.exceptions import RecordNotFoundError, StorageConflictError, ValidationError
from guardian_engine.gamification.anomaly_detection import AnomalyThresholds, detect_anomalies
from guardian_engine.gamification.energy_history import (
    calculate_history_summary,
    credited_energy,
    record_energy_history,
)
from guardian_engine.gamification.energy_system import EnergyRules, grant_energy, is_valid_report
from guardian_engine.gamification.guardian_progression import (
    create_new_profile,
    format_investment_message,
    invest_energy,
    set_active_guardian,
    unlock_guardian,
)
from guardian_engine.gamification.guardian_registry import GuardianRegistry, get_registry
from guardian_engine.gamification.level_system import calculate_level, format_level_message
from guardian_engine.gamification.streak_system import (
    advance_streak,
    format_streak_message,
    get_streak_warning,
)
from guardian_engine.models.energy import EnergyBreakdown, EnergyHistorySummary, UserEnergyData
from guardian_engine.models.guardian import GuardianId, UserGuardianProfile
from guardian_engine.models.report import Report, ReportEvent
from guardian_engine.models.results import (
    AnomalyReview,
    InvestmentResult,
    LevelInfo,
    ReportOutcome,
    StreakAdvance,
    StreakWarning,
    UnlockResult,
)
from guardian_engine.observability import metrics
from guardian_engine.services.energy_sink import EnergySink, LoggingEnergySink
from guardian_engine.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


class GuardianService:
    """
    Service for the energy and guardian meta-game.

    Responsibilities:
    - Report processing (streak, energy grant, history, level)
    - Energy investment and guardian evolution
    - Guardian unlocks and active guardian selection
    - Read-side summaries, level info and streak warnings
    - Anomaly review for admins
    """

    def __init__(
        self,
        store: ProfileStore,
        sink: Optional[EnergySink] = None,
        *,
        registry: Optional[GuardianRegistry] = None,
        rules: Optional[EnergyRules] = None,
        anomaly_thresholds: Optional[AnomalyThresholds] = None,
        history_window_days: int = config.HISTORY_WINDOW_DAYS
    ):
        """
        Initialize GuardianService.

        Args:
            store: Transactional profile storage
            sink: Receiver of grant/level/evolution/unlock events
            registry: Guardian catalog (process default if omitted)
            rules: Energy tuning (from configuration if omitted)
            anomaly_thresholds: Anomaly heuristic tuning
            history_window_days: Days of history read for the weekly bonus
        """
        self.store = store
        self.sink = sink or LoggingEnergySink()
        self.registry = registry or get_registry()
        self.rules = rules or EnergyRules.from_config()
        self.anomaly_thresholds = anomaly_thresholds or AnomalyThresholds()
        self.history_window_days = history_window_days
        logger.debug("GuardianService initialized")

    @asynccontextmanager
    async def _transaction(self, user_id: str, operation: str) -> AsyncIterator[ProfileTransaction]:
        started = time.perf_counter()
        try:
            async with self.store.transaction(user_id) as tx:
                yield tx
        except StorageConflictError:
            metrics.storage_conflicts_total.labels(operation=operation).inc()
            raise
        finally:
            metrics.operation_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - started
            )

    async def _load_existing(self, tx: ProfileTransaction) -> UserGuardianProfile:
        profile = await tx.load_profile()
        if profile is None:
            raise RecordNotFoundError(
                f"No guardian profile for user {tx.user_id}",
                record_type="Guardian profile",
                record_id=tx.user_id,
                user_id=tx.user_id
            )
        return profile

    # ==========================================
    # Reports
    # ==========================================

    async def process_report(self, event: ReportEvent, now: Optional[datetime] = None) -> ReportOutcome:
        """
        Apply one report submission.

        An empty report (all metrics zero) is not accepted: the streak does
        not move, no energy is granted and nothing is written. A second
        report for the same day replaces the day's record and grants only
        the increase over the recorded total.

        Args:
            event: Report submission
            now: Processing time (defaults to current UTC time)

        Returns:
            ReportOutcome

        Raises:
            ValidationError: If the report is dated before the last report
            StorageConflictError: If another transaction for the user won the race
        """
        now = now or now_utc()
        user_id = event.user_id

        try:
            async with self._transaction(user_id, "process_report") as tx:
                profile = await tx.load_profile() or create_new_profile(user_id, now)
                previous_level = calculate_level(profile.energy.total_earned)

                if not is_valid_report(event.report_metrics):
                    logger.debug(f"Empty report from {user_id} for {event.date} ignored")
                    metrics.reports_processed_total.labels(status="empty").inc()
                    return ReportOutcome(
                        user_id=user_id,
                        accepted=False,
                        streak=StreakAdvance(
                            next=profile.streak,
                            streak_day=profile.streak.current_streak,
                        ),
                        breakdown=EnergyBreakdown(),
                        previous_level=previous_level.level,
                        new_level=previous_level.level,
                        messages=["Report has no values yet. Fill in at least one metric to earn energy."],
                    )

                previous_streak = profile.streak
                duplicate = event.date == previous_streak.last_report_date
                advance = advance_streak(profile.streak, event.date)

                recent = await tx.recent_history(event.date, self.history_window_days)
                breakdown = grant_energy(
                    advance.streak_day,
                    event.report_metrics,
                    recent,
                    report_date=event.date,
                    rules=self.rules
                )

                record, replaced = await record_energy_history(
                    tx, user_id, event.date, breakdown, advance.streak_day, now=now
                )
                credited = credited_energy(record, replaced)
                granted = sum(credited.values())

                profile.streak = advance.next
                profile.energy = UserEnergyData(
                    current=profile.energy.current + granted,
                    total_earned=profile.energy.total_earned + granted,
                    last_earned_at=now if granted else profile.energy.last_earned_at,
                )
                await tx.save_profile(profile)
        except ValidationError:
            metrics.reports_processed_total.labels(status="rejected").inc()
            raise

        new_level = calculate_level(profile.energy.total_earned)
        leveled_up = new_level.level > previous_level.level

        messages = [format_streak_message(advance, previous_streak)]
        if granted:
            messages.append(f"💎 +{granted} E earned!")
        if leveled_up:
            messages.append(format_level_message(new_level, previous_level.level))

        outcome = ReportOutcome(
            user_id=user_id,
            accepted=True,
            duplicate=duplicate,
            is_modification=event.is_modification,
            streak=advance,
            breakdown=breakdown,
            energy_granted=granted,
            record=record,
            previous_level=previous_level.level,
            new_level=new_level.level,
            leveled_up=leveled_up,
            messages=messages,
        )

        metrics.reports_processed_total.labels(status="duplicate" if duplicate else "accepted").inc()
        if event.is_modification:
            metrics.report_modifications_total.inc()
        for source, amount in credited.items():
            if amount:
                metrics.energy_granted_total.labels(source=source).inc(amount)
        if leveled_up:
            metrics.level_ups_total.inc()

        logger.info(
            f"Report processed: user={user_id}, date={event.date}, streak={advance.next.current_streak}, "
            f"granted={granted}, total={profile.energy.total_earned}, level={new_level.level}"
        )

        await self._notify("on_energy_granted", outcome)
        if leveled_up:
            await self._notify("on_level_up", user_id, previous_level.level, new_level)

        return outcome

    # ==========================================
    # Guardians
    # ==========================================

    async def invest_energy(
        self,
        user_id: str,
        guardian_id: GuardianId,
        amount: int,
        now: Optional[datetime] = None
    ) -> InvestmentResult:
        """
        Invest spendable energy into one of the user's guardians.

        Raises:
            ValidationError: Negative amount, unknown or locked guardian
            RecordNotFoundError: If the user has no profile yet
            StorageConflictError: If another transaction for the user won the race
        """
        async with self._transaction(user_id, "invest_energy") as tx:
            profile = await self._load_existing(tx)
            result = invest_energy(profile, guardian_id, amount, registry=self.registry, now=now)
            if result.actual_invested:
                await tx.save_profile(result.profile)

        if result.actual_invested:
            metrics.energy_invested_total.labels(guardian_id=guardian_id).inc(result.actual_invested)
        if result.evolved:
            metrics.guardian_evolutions_total.labels(
                guardian_id=guardian_id, to_stage=str(result.new_stage)
            ).inc()
            await self._notify("on_evolution", user_id, result)

        logger.info(format_investment_message(result, self.registry) + f" (user={user_id})")
        return result

    async def unlock_guardian(
        self,
        user_id: str,
        guardian_id: GuardianId,
        now: Optional[datetime] = None
    ) -> UnlockResult:
        """
        Unlock a guardian for the user.

        A user without a profile yet gets one, so the first (free) guardian
        can be chosen before the first report. A refused unlock writes
        nothing and returns success=False with the reason.

        Raises:
            UnknownGuardianError: If the guardian is not in the catalog
            StorageConflictError: If another transaction for the user won the race
        """
        now = now or now_utc()
        async with self._transaction(user_id, "unlock_guardian") as tx:
            profile = await tx.load_profile() or create_new_profile(user_id, now)
            result = unlock_guardian(profile, guardian_id, registry=self.registry, now=now)
            if result.success:
                await tx.save_profile(result.profile)

        if result.success:
            metrics.guardian_unlocks_total.labels(guardian_id=guardian_id).inc()
            await self._notify("on_unlock", user_id, result)

        return result

    async def switch_active_guardian(self, user_id: str, guardian_id: GuardianId) -> UserGuardianProfile:
        """
        Make an unlocked guardian the active one.

        Raises:
            UnknownGuardianError / GuardianNotUnlockedError: Invalid target
            RecordNotFoundError: If the user has no profile yet
        """
        async with self._transaction(user_id, "switch_active_guardian") as tx:
            profile = await self._load_existing(tx)
            updated = set_active_guardian(profile, guardian_id, registry=self.registry)
            await tx.save_profile(updated)

        logger.info(f"User {user_id} switched active guardian to {guardian_id}")
        return updated

    # ==========================================
    # Read side
    # ==========================================

    async def get_profile(self, user_id: str) -> UserGuardianProfile:
        """Stored profile, or an unsaved empty one for an unknown user"""
        return await self.store.get_profile(user_id) or create_new_profile(user_id)

    async def get_level(self, user_id: str) -> LevelInfo:
        profile = await self.get_profile(user_id)
        return calculate_level(profile.energy.total_earned)

    async def get_streak_warning(self, user_id: str, now: Optional[datetime] = None) -> StreakWarning:
        """
        Advisory streak-break warning.

        Pass now in the user's timezone; the calendar day is taken from it.
        """
        profile = await self.get_profile(user_id)
        return get_streak_warning(
            profile.streak.last_report_date,
            now or now_utc(),
            current_streak=profile.streak.current_streak
        )

    async def get_history_summary(
        self,
        user_id: str,
        end_date: date,
        days: int = config.HISTORY_WINDOW_DAYS
    ) -> EnergyHistorySummary:
        """
        Summary of the `days` calendar days ending at end_date (inclusive).

        Raises:
            ValidationError: If days is not positive
        """
        if days <= 0:
            raise ValidationError(message="days must be positive", field="days", value=days, user_id=user_id)

        start = end_date - timedelta(days=days - 1)
        records = await self.store.get_history_range(user_id, start, end_date)
        return calculate_history_summary(records, period_days=days)

    async def review_anomalies(self, user_id: str, recent_reports: Sequence[Report]) -> AnomalyReview:
        """
        Advisory anomaly flags for admin review. Never changes state.

        Args:
            user_id: User under review
            recent_reports: The user's reports in the review window
        """
        profile = await self.get_profile(user_id)

        stage = 0
        if profile.active_guardian_id:
            active = profile.guardians[profile.active_guardian_id]
            stage = self.registry.current_stage(active.invested_energy)

        flags = detect_anomalies(
            recent_reports,
            profile.energy.current,
            stage,
            thresholds=self.anomaly_thresholds
        )
        for name in flags.flagged_names():
            metrics.anomaly_flags_total.labels(flag=name).inc()

        return AnomalyReview(
            user_id=user_id,
            flags=flags,
            current_energy=profile.energy.current,
            current_stage=stage,
            reports_reviewed=len(recent_reports),
        )

    async def _notify(self, hook: str, *args) -> None:
        """Call a sink hook; a failing sink never undoes a committed transaction"""
        try:
            await getattr(self.sink, hook)(*args)
        except Exception as e:
            logger.error(f"EnergySink.{hook} failed: {e}", exc_info=True)
