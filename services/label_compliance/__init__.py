"""
Label Compliance Service
========================

Label panel extraction with a vision model, rule scoring with a reasoning
model, check history and CSV/PDF reports.

Components:
- extraction: Vision-model panel extraction with review flags
- scoring: Rule evaluation and deterministic check summary
- workflow: Check sessions, custom rules and report storage
- reports: CSV and PDF rendering

Version: 0.1.0
"""

__version__ = "0.1.0"
