"""
Error Types
===========

Exception hierarchy for the audit intelligence core.

Not-found conditions are normally recovered inside the engines; persistence
errors are retried and then logged. Anything else propagates from the
orchestration entry points.

Version: 0.1.0
"""


class AuditIntelligenceError(Exception):
    """Base class for audit intelligence errors."""


class NotFoundError(AuditIntelligenceError):
    """Requested auditor, template or model is absent."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ModelNotFoundError(NotFoundError):
    """No active scoring model of the requested type or id."""

    def __init__(self, identifier: str) -> None:
        super().__init__("scoring model", identifier)


class PersistenceError(AuditIntelligenceError):
    """A write to the data-access collaborator failed."""
