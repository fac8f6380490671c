"""
Audit Intelligence Test Suite
=============================

Test organization:
- tests/services/audit_intelligence/   - Engine, registry and orchestrator tests
- tests/unit/                          - Shared library tests (config, models, data access)

Run tests:
    pytest                                      # All tests
    pytest tests/services/audit_intelligence    # Engine tests only
    pytest -k orchestrator                      # One area
"""
