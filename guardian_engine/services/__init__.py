"""
Service Layer Package

Business logic services between callers (web handlers, workers) and the
storage layer.

Core Services:
- GuardianService: Reports, energy, levels, guardians, anomaly review
- EnergySink / LoggingEnergySink: Presentation hook for engine events
- ServiceContainer: Wiring of store, sink and service
"""

from guardian_engine.services.container import (
    ServiceContainer,
    create_memory_container,
    create_postgres_container,
)
from guardian_engine.services.energy_sink import EnergySink, LoggingEnergySink
from guardian_engine.services.guardian_service import GuardianService

__all__ = [
    "ServiceContainer",
    "create_memory_container",
    "create_postgres_container",
    "EnergySink",
    "LoggingEnergySink",
    "GuardianService",
]
