"""Error hierarchy shared by the access, registration, and scoring flows."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class AssessmentServiceError(Exception):
    """Base error rendered to clients as ``{"error": message, ...extra}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected error"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class MissingFieldsError(AssessmentServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing required fields"


class InvalidLinkError(AssessmentServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Invalid assessment link"


class ParticipantNotFoundError(AssessmentServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Participant not found"


class AlreadySubmittedError(AssessmentServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Assessment already submitted"


class AssessmentMismatchError(AssessmentServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Assessment mismatch"


class AccessRestrictedError(AssessmentServiceError):
    """The assessment window is closed, not yet open, or over."""

    status_code = status.HTTP_403_FORBIDDEN


class DuplicateRegistrationError(AssessmentServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already registered"


class QuestionLoadError(AssessmentServiceError):
    default_message = "Failed to load questions"


class ResponseSaveError(AssessmentServiceError):
    default_message = "Failed to save responses"


__all__ = [
    "AccessRestrictedError",
    "AlreadySubmittedError",
    "AssessmentMismatchError",
    "AssessmentServiceError",
    "DuplicateRegistrationError",
    "InvalidLinkError",
    "MissingFieldsError",
    "ParticipantNotFoundError",
    "QuestionLoadError",
    "ResponseSaveError",
]
