"""
Database Module
===============

Data-access abstractions for the audit intelligence engines.

Components:
- AuditRepository: async protocol implemented by the host application
- InMemoryAuditRepository: dictionary-backed implementation
- EntityLocks: per-entity single-writer locks
- persistence_retry: tenacity policy for best-effort writes

Usage:
    from shared.database import InMemoryAuditRepository

    repository = InMemoryAuditRepository()
    recommender = AuditorRecommender(repository)
"""

from shared.database.locks import EntityLocks
from shared.database.memory import InMemoryAuditRepository
from shared.database.repository import AuditRepository
from shared.database.retry import persistence_retry


__all__ = [
    "AuditRepository",
    "InMemoryAuditRepository",
    "EntityLocks",
    "persistence_retry",
]
