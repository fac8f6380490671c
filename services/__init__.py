"""
Audit Intelligence Services
===========================

Service packages for the audit intelligence platform.

Services:
- audit_intelligence: procedure, auditor and timeline recommendation,
  pattern mining and scoring model management
"""

__all__ = [
    "audit_intelligence",
]
