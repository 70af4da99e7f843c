"""
Labelwise Shared Library
========================

Common utilities, configurations, and abstractions shared across all Labelwise services.

Modules:
    - config: Configuration management with Pydantic Settings
    - logging: Structured logging with structlog
    - auth: JWT authentication and admin role checks
    - database: Async SQLAlchemy engine and ORM models
    - storage: MinIO object storage for label images and reports
    - llm: AI provider abstraction (gateway, Claude, OpenAI, Groq, Perplexity)
    - models: Shared Pydantic API schemas

Version: 0.1.0
"""

__version__ = "0.1.0"
__author__ = "Labelwise Team"

from shared.config import settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
