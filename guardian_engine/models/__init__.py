"""Pydantic models of the guardian engine"""
from guardian_engine.models.energy import (
    BestDay,
    EnergyBreakdown,
    EnergyHistoryRecord,
    EnergyHistorySummary,
    UserEnergyData,
    UserStreakData,
    make_history_record_id,
)
from guardian_engine.models.guardian import (
    AbilityEffect,
    EvolutionStageDefinition,
    GuardianAbility,
    GuardianAttribute,
    GuardianDefinition,
    GuardianInstance,
    GuardianMemory,
    GuardianPersonality,
    UnlockCondition,
    UserGuardianProfile,
)
from guardian_engine.models.report import AnomalyFlags, Report, ReportEvent, ReportMetrics
from guardian_engine.models.results import (
    AnomalyReview,
    InvestmentResult,
    LevelInfo,
    ReportOutcome,
    StreakAdvance,
    StreakBadge,
    StreakUrgency,
    StreakWarning,
    UnlockEligibility,
    UnlockResult,
)
