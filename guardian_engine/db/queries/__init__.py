"""
PostgreSQL queries.

Module organization:
- guardian.py: Guardian profiles and the energy history ledger
"""

from guardian_engine.db.queries.guardian import PostgresProfileStore, PostgresTransaction

__all__ = ["PostgresProfileStore", "PostgresTransaction"]
