"""Storage layer: ProfileStore interface and its adapters"""
from guardian_engine.db.memory_store import InMemoryProfileStore
from guardian_engine.db.store import ProfileStore, ProfileTransaction

__all__ = ["ProfileStore", "ProfileTransaction", "InMemoryProfileStore"]
