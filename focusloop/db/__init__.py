"""
Database Module - Learner state persistence.

Components:
- Store / InMemoryStore: Persistence interface and process-local implementation
- SqlStore: SQLAlchemy implementation (sqlite or postgresql)
- PersistenceOutbox: Retry queue for deferred writes
- database: Engine and session_scope helpers
"""

from focusloop.db.outbox import PersistenceOutbox
from focusloop.db.store import InMemoryStore, Store

__all__ = [
    "InMemoryStore",
    "PersistenceOutbox",
    "Store",
]
