"""Async HTTP client for the participant-facing assessment endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import Settings
from ..score_summary import AnswerValue, AssessmentConfig, ResultsPayload, SubmissionType


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0

# Registration reports window problems as codes; the session loader uses statuses.
_REGISTRATION_WINDOW_STATUS = {
    "INACTIVE": "closed",
    "NOT_STARTED": "not_started",
    "EXPIRED": "expired",
}


class DeliveryApiError(RuntimeError):
    """Base error for calls made by the delivery client."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, payload: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload: Dict[str, Any] = dict(payload or {})


class ApiTransportError(DeliveryApiError):
    """The request never produced an HTTP response."""


class ApiServerError(DeliveryApiError):
    """The service answered with a 5xx or an unreadable body."""


class LinkNotFoundError(DeliveryApiError):
    pass


class AccessWindowError(DeliveryApiError):
    """The assessment is closed, not yet open, or over."""

    @property
    def status(self) -> str:
        status = self.payload.get("status")
        if isinstance(status, str):
            return status
        return _REGISTRATION_WINDOW_STATUS.get(str(self.payload.get("code")), "closed")


class RegistrationConflictError(DeliveryApiError):
    @property
    def code(self) -> str:
        return str(self.payload.get("code") or "DUPLICATE")


class RequestRejectedError(DeliveryApiError):
    """Any other 4xx answer, e.g. missing fields or an already-submitted session."""


class Branding(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    logo_url: Optional[str] = Field(None, alias="logoUrl")
    primary_color: Optional[str] = Field(None, alias="primaryColor")
    language: Optional[str] = None


class DeliveryQuestion(BaseModel):
    id: str
    type: str = "multiple_choice"
    text: str = ""
    options: List[Any] = Field(default_factory=list)


class AssessmentInfo(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    language: str = "en"
    config: AssessmentConfig = Field(default_factory=AssessmentConfig)


class ParticipantRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    full_name: Optional[str] = Field(None, alias="fullName")


class SessionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    requires_registration: bool = Field(False, alias="requiresRegistration")
    show_results: bool = Field(False, alias="showResults")
    assessment: Optional[AssessmentInfo] = None
    questions: List[DeliveryQuestion] = Field(default_factory=list)
    organization: Optional[Branding] = None
    participant: Optional[ParticipantRef] = None
    results: Optional[ResultsPayload] = None


class SubmitResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    show_results: bool = Field(False, alias="showResults")
    results: Optional[ResultsPayload] = None


class AssessmentApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` that turns responses into typed results or errors."""

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.AsyncClient] = None) -> "AssessmentApiClient":
        return cls(settings.api_base_url, client=client)

    @property
    def base_url(self) -> str:
        return str(self._client.base_url).rstrip("/")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AssessmentApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed before a response arrived: %s", method, path, exc)
            raise ApiTransportError(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ApiServerError(
                f"Unreadable response body from {response.request.url.path}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise ApiServerError("Unexpected response shape", status_code=response.status_code)
        return body

    def _raise_for_error(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code >= 500:
            message = f"Server error {response.status_code}"
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            raise ApiServerError(message, status_code=response.status_code, payload=payload if isinstance(payload, dict) else None)

        body = self._body(response)
        if response.is_success:
            return body

        message = str(body.get("error") or f"Request failed with {response.status_code}")
        status_code = response.status_code
        if status_code == 404:
            raise LinkNotFoundError(message, status_code=status_code, payload=body)
        if status_code == 403:
            raise AccessWindowError(message, status_code=status_code, payload=body)
        if status_code == 409:
            raise RegistrationConflictError(message, status_code=status_code, payload=body)
        raise RequestRejectedError(message, status_code=status_code, payload=body)

    async def load_session(self, token: str, *, group_link: bool = False) -> SessionPayload:
        response = await self._request(
            "GET",
            "/api/assessments/session",
            params={"token": token, "group": "true" if group_link else "false"},
        )
        body = self._raise_for_error(response)
        try:
            return SessionPayload.model_validate(body)
        except ValidationError as exc:
            raise ApiServerError("Session payload failed validation", status_code=response.status_code) from exc

    async def register(
        self,
        group_token: str,
        *,
        full_name: str,
        email: str,
        employee_code: str,
        department: Optional[str] = None,
        job_title: Optional[str] = None,
    ) -> str:
        response = await self._request(
            "POST",
            "/api/assessments/register",
            json={
                "groupToken": group_token,
                "fullName": full_name,
                "email": email,
                "employeeCode": employee_code,
                "department": department,
                "jobTitle": job_title,
            },
        )
        body = self._raise_for_error(response)
        participant_id = body.get("participantId")
        if not isinstance(participant_id, str) or not participant_id:
            raise ApiServerError("Registration response did not include a participant id")
        return participant_id

    async def submit(
        self,
        participant_id: str,
        assessment_id: str,
        answers: Sequence[Mapping[str, AnswerValue]],
        *,
        submission_type: SubmissionType = "normal",
    ) -> SubmitResult:
        response = await self._request(
            "POST",
            "/api/assessments/submit",
            json={
                "participantId": participant_id,
                "assessmentId": assessment_id,
                "answers": list(answers),
                "submissionType": submission_type,
            },
        )
        body = self._raise_for_error(response)
        try:
            return SubmitResult.model_validate(body)
        except ValidationError as exc:
            raise ApiServerError("Submission payload failed validation", status_code=response.status_code) from exc


__all__ = [
    "AccessWindowError",
    "ApiServerError",
    "ApiTransportError",
    "AssessmentApiClient",
    "AssessmentInfo",
    "Branding",
    "DeliveryApiError",
    "DeliveryQuestion",
    "LinkNotFoundError",
    "ParticipantRef",
    "RegistrationConflictError",
    "RequestRejectedError",
    "SessionPayload",
    "SubmitResult",
]
