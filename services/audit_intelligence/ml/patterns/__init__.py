"""Pattern recognition over completed-audit learning data."""

from services.audit_intelligence.ml.patterns.engine import PatternEngine, PatternThresholds

__all__ = [
    "PatternEngine",
    "PatternThresholds",
]
