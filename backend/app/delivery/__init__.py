"""Participant-side delivery client for timed assessment sessions."""

from .api_client import AssessmentApiClient
from .controller import RegistrationForm, SessionController, SessionState, SubmitCause
from .countdown import Countdown
from .page import PageEvents

__all__ = [
    "AssessmentApiClient",
    "Countdown",
    "PageEvents",
    "RegistrationForm",
    "SessionController",
    "SessionState",
    "SubmitCause",
]
