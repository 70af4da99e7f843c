"""
Regulatory Monitor Routes
=========================

API route handlers for the Regulatory Monitor Service.
"""

from services.regulatory_monitor.routes import audit, checks, rules, sources, states, suggestions


__all__ = ["audit", "checks", "rules", "sources", "states", "suggestions"]
