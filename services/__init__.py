"""
Labelwise Services
==================

FastAPI services for the Labelwise label compliance platform.

Services:
- regulatory_monitor: Source change detection, AI rule suggestions, review and rule editing
- label_compliance: Label panel extraction, compliance scoring and reports
"""

__all__ = [
    "regulatory_monitor",
    "label_compliance",
]
