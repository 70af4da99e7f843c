"""
Regulatory Monitor Exceptions
=============================

Domain errors raised by the review workflow, rule editor and source
registry. Each carries the HTTP status the API answers with.

Version: 0.1.0
"""

from fastapi import status


class RegulatoryMonitorError(Exception):
    """Base class for regulatory monitor domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(RegulatoryMonitorError):
    """Referenced state, source, rule or suggestion does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class SuggestionAlreadyReviewedError(RegulatoryMonitorError):
    """Suggestion is no longer pending; approved and rejected are terminal."""

    status_code = status.HTTP_409_CONFLICT


class RuleVersionConflictError(RegulatoryMonitorError):
    """Rule changed since the caller (or the suggestion) last read it."""

    status_code = status.HTTP_409_CONFLICT


class InvalidSuggestionError(RegulatoryMonitorError):
    """Suggestion cannot be applied, e.g. an update without a target rule."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
