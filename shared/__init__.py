"""
Audit Intelligence Shared Library
=================================

Common utilities, configuration and abstractions shared by the audit
recommendation services.

Modules:
    - config: Configuration management with Pydantic Settings
    - logging: Structured logging with structlog
    - database: Data-access protocol and in-memory store
    - errors: Exception hierarchy
    - models: Shared Pydantic models

Version: 0.1.0
"""

__version__ = "0.1.0"
__author__ = "Audit Intelligence Team"

from shared.config import settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
