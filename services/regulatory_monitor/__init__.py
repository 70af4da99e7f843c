"""
Regulatory Monitor Service
==========================

Tracks government regulatory pages per state and keeps the rule set current.

Features:
- Firecrawl scraping with SHA-256 change detection
- AI diff of changed pages against the active rule set
- Web-search deep checks (Groq compound, OpenAI, Perplexity)
- Suggestion review with an append-only rule audit log
- Rule, state and source administration; citation links

Port: 8001
"""

__version__ = "0.1.0"
