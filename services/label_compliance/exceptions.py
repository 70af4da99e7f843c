"""
Label Compliance Exceptions
===========================

Domain errors raised by the check workflow and custom rule management.

Version: 0.1.0
"""

from fastapi import status


class LabelComplianceError(Exception):
    """Base class for label compliance domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LabelComplianceError):
    """Check, panel, report or custom rule is missing or owned by someone else."""

    status_code = status.HTTP_404_NOT_FOUND


class InvalidImageError(LabelComplianceError):
    """Uploaded panel is not a base64 image data URL."""


class CheckNotReadyError(LabelComplianceError):
    """Check cannot be scored or reported yet."""
