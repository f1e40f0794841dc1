"""
EnergySink - presentation hook for engine events

The service calls the sink after a transaction has committed. Implementations
push notifications, update dashboards, play celebrations, etc. The default
LoggingEnergySink only writes log lines.
"""

import logging

from guardian_engine.models.results import (
    InvestmentResult,
    LevelInfo,
    ReportOutcome,
    UnlockResult,
)

logger = logging.getLogger(__name__)


class EnergySink:
    """Base sink; every hook is a no-op"""

    async def on_energy_granted(self, outcome: ReportOutcome) -> None:
        pass

    async def on_level_up(self, user_id: str, previous_level: int, level: LevelInfo) -> None:
        pass

    async def on_evolution(self, user_id: str, result: InvestmentResult) -> None:
        pass

    async def on_unlock(self, user_id: str, result: UnlockResult) -> None:
        pass


class LoggingEnergySink(EnergySink):
    """Writes each event to the log"""

    async def on_energy_granted(self, outcome: ReportOutcome) -> None:
        logger.info(
            f"Energy granted: user={outcome.user_id}, energy={outcome.energy_granted}, "
            f"streak={outcome.streak.next.current_streak}, duplicate={outcome.duplicate}"
        )

    async def on_level_up(self, user_id: str, previous_level: int, level: LevelInfo) -> None:
        logger.info(f"Level up: user={user_id}, {previous_level} -> {level.level} ({level.title})")

    async def on_evolution(self, user_id: str, result: InvestmentResult) -> None:
        logger.info(
            f"Guardian evolved: user={user_id}, guardian={result.guardian_id}, "
            f"stage {result.previous_stage} -> {result.new_stage}"
        )

    async def on_unlock(self, user_id: str, result: UnlockResult) -> None:
        logger.info(
            f"Guardian unlocked: user={user_id}, guardian={result.guardian_id}, "
            f"cost={result.energy_spent}"
        )
