"""
Label Compliance Routes
=======================

API route handlers for the Label Compliance Service.
"""

from services.label_compliance.routes import analysis, checks, custom_rules


__all__ = ["analysis", "checks", "custom_rules"]
