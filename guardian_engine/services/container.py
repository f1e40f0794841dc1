"""
Service Container - Dependency Injection Container

Simple DI container wiring storage, sink and tuning into the GuardianService.
Uses lazy loading to only instantiate the service when first accessed.

There is no global container: the embedding process creates one and passes
it where it is needed.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from guardian_engine.config import DATABASE_URL
from guardian_engine.db.store import ProfileStore
from guardian_engine.gamification.energy_system import EnergyRules
from guardian_engine.gamification.guardian_registry import GuardianRegistry
from guardian_engine.observability.metrics import init_metrics
from guardian_engine.services.energy_sink import EnergySink

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    Infrastructure dependencies (store, sink) are injected.
    """

    # Infrastructure dependencies (injected)
    store: ProfileStore
    sink: Optional[EnergySink] = None

    # Tuning (defaults from configuration when omitted)
    registry: Optional[GuardianRegistry] = None
    rules: Optional[EnergyRules] = None

    # Services (lazy-loaded via properties)
    _guardian_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def guardian_service(self):
        """Get GuardianService instance (lazy-loaded)"""
        if self._guardian_service is None:
            from guardian_engine.services.guardian_service import GuardianService
            self._guardian_service = GuardianService(
                self.store,
                self.sink,
                registry=self.registry,
                rules=self.rules
            )
            logger.debug("GuardianService instantiated")
        return self._guardian_service

    async def close(self) -> None:
        """Release storage resources"""
        await self.store.close()


def create_memory_container(sink: Optional[EnergySink] = None, **kwargs) -> ServiceContainer:
    """
    Container backed by the in-memory store.

    Args:
        sink: Optional EnergySink
        **kwargs: registry / rules overrides

    Returns:
        ServiceContainer
    """
    from guardian_engine.db.memory_store import InMemoryProfileStore

    init_metrics()
    logger.info("Creating service container with in-memory store")
    return ServiceContainer(store=InMemoryProfileStore(), sink=sink, **kwargs)


async def create_postgres_container(
    database_url: str = DATABASE_URL,
    sink: Optional[EnergySink] = None,
    **kwargs
) -> ServiceContainer:
    """
    Container backed by PostgreSQL. Opens the connection pool.

    Args:
        database_url: PostgreSQL connection string
        sink: Optional EnergySink
        **kwargs: registry / rules overrides

    Returns:
        ServiceContainer (call close() on shutdown)
    """
    from guardian_engine.db.connection import Database
    from guardian_engine.db.queries.guardian import PostgresProfileStore

    db = Database(database_url)
    await db.init_pool()
    init_metrics()
    logger.info("Creating service container with PostgreSQL store")
    return ServiceContainer(store=PostgresProfileStore(db), sink=sink, **kwargs)
