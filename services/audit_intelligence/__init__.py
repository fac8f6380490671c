"""
Audit Intelligence Service
==========================

Decision support for audit planning: ranked procedure, auditor and
timeline recommendations that improve from completed-audit outcomes.

Features:
- Procedure recommendation (multi-factor weighted scoring)
- Auditor recommendation (skill alignment, workload, history)
- Timeline recommendation (duration factors, buffers, milestones)
- Pattern mining and anomaly detection over completed audits
- Scoring model registry with simulated retraining
- Comprehensive recommendation orchestration and learning intake
"""

__version__ = "0.1.0"
