"""Session metadata loading and self-registration for assessment links."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .db.models import AssessmentGroupModel, AssessmentModel, OrganizationModel, ParticipantModel
from .db.session import session_scope
from .errors import (
    AccessRestrictedError,
    DuplicateRegistrationError,
    InvalidLinkError,
    MissingFieldsError,
    QuestionLoadError,
)
from .repositories.participants import participant_repository
from .score_summary import AssessmentConfig, dump_score_summary, parse_score_summary
from .telemetry import emit_event


logger = logging.getLogger(__name__)


class RegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_token: Optional[str] = Field(None, alias="groupToken")
    full_name: Optional[str] = Field(None, alias="fullName")
    email: Optional[str] = None
    employee_code: Optional[str] = Field(None, alias="employeeCode")
    department: Optional[str] = None
    job_title: Optional[str] = Field(None, alias="jobTitle")


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timezone-aware columns back naive; they were written as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    aware = _aware(value)
    return aware.isoformat() if aware else None


def _branding(organization: Optional[OrganizationModel]) -> Optional[Dict[str, Any]]:
    if organization is None:
        return None
    return {
        "id": organization.id,
        "name": organization.name,
        "logoUrl": organization.logo_url,
        "primaryColor": organization.primary_color,
        "language": organization.primary_language,
    }


def _window_violation(group: AssessmentGroupModel, now: datetime) -> Optional[str]:
    """Return ``closed``, ``not_started`` or ``expired`` when the group window blocks access."""
    if not group.is_active:
        return "closed"
    start = _aware(group.start_date)
    if start is not None and start > now:
        return "not_started"
    end = _aware(group.end_date)
    if end is not None and end < now:
        return "expired"
    return None


_RESTRICTED_MESSAGES = {
    "closed": "This assessment is no longer active",
    "not_started": "This assessment has not started yet",
    "expired": "This assessment has ended",
}


def _restricted(
    violation: str,
    group: AssessmentGroupModel,
    assessment: AssessmentModel,
    organization: Optional[Dict[str, Any]],
) -> AccessRestrictedError:
    extra: Dict[str, Any] = {
        "status": violation,
        "organization": organization,
        "assessment": {"title": assessment.title, "language": assessment.language},
    }
    if violation == "not_started":
        extra["startDate"] = _iso(group.start_date)
    elif violation == "expired":
        extra["endDate"] = _iso(group.end_date)
    return AccessRestrictedError(_RESTRICTED_MESSAGES[violation], **extra)


def _completed_payload(
    participant: ParticipantModel,
    assessment: AssessmentModel,
    config: AssessmentConfig,
    organization: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    if not config.show_results_to_employee:
        return {"status": "completed", "showResults": False, "organization": organization}

    summary = parse_score_summary(participant.score_summary)
    return {
        "status": "completed",
        "showResults": True,
        "participant": {
            "id": participant.id,
            "fullName": participant.full_name,
            "completedAt": _iso(participant.completed_at),
        },
        "assessment": {
            "id": assessment.id,
            "title": assessment.title,
            "type": assessment.type,
            "language": assessment.language,
            "isGraded": assessment.is_graded,
        },
        "results": {
            "scoreSummary": dump_score_summary(summary) if summary else None,
            "aiReport": participant.ai_report_text,
            "allowPdfDownload": config.allow_employee_pdf_download,
        },
        "organization": organization,
    }


def load_session(token: Optional[str], *, is_group_link: bool = False) -> Dict[str, Any]:
    """Resolve an assessment link into the payload the delivery client starts from."""
    token = (token or "").strip()
    if not token:
        raise MissingFieldsError("Missing token parameter")

    now = datetime.now(timezone.utc)
    with session_scope() as session:
        participant: Optional[ParticipantModel] = None
        if is_group_link:
            group = participant_repository.get_group_by_link_token(session, token)
            if group is None:
                raise InvalidLinkError()
            assessment = group.assessment
            org_model = group.organization
        else:
            participant = participant_repository.get_by_access_token(session, token)
            if participant is None:
                raise InvalidLinkError()
            group = participant.group
            assessment = participant.assessment
            org_model = participant.organization

        organization = _branding(org_model)
        if group is not None:
            violation = _window_violation(group, now)
            if violation is not None:
                logger.info("Assessment access restricted (%s) for token link %s", violation, group.id)
                raise _restricted(violation, group, assessment, organization)

        config = AssessmentConfig.from_assessment(
            is_graded=assessment.is_graded,
            language=assessment.language,
            config=assessment.config,
        )

        if participant is not None and participant.status == "completed":
            return _completed_payload(participant, assessment, config, organization)

        try:
            questions = participant_repository.list_questions(session, assessment.id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load questions for assessment %s", assessment.id)
            raise QuestionLoadError() from exc

        if participant is not None and participant.status == "invited":
            participant_repository.mark_started(session, participant.id)

        emit_event(
            "assessment_session_loaded",
            assessment_id=assessment.id,
            participant_id=participant.id if participant else None,
            group_link=is_group_link,
            questions=len(questions),
        )

        return {
            "status": "ready",
            "requiresRegistration": is_group_link,
            "assessmentGroup": (
                {"id": group.id, "name": group.name, "organizationId": group.organization_id}
                if group is not None
                else None
            ),
            "assessment": {
                "id": assessment.id,
                "title": assessment.title,
                "description": assessment.description,
                "type": assessment.type,
                "language": config.language,
                "config": config.model_dump(mode="json", by_alias=True),
            },
            "questions": [
                {
                    "id": question.id,
                    "type": question.type,
                    "text": question.text,
                    "options": question.options or [],
                }
                for question in questions
            ],
            "organization": organization,
            "participant": (
                {"id": participant.id, "fullName": participant.full_name} if participant is not None else None
            ),
        }


_REGISTRATION_CODES = {
    "closed": ("INACTIVE", "Assessment is no longer active"),
    "not_started": ("NOT_STARTED", "Assessment has not started yet"),
    "expired": ("EXPIRED", "Assessment has ended"),
}


def register_participant(request: RegistrationRequest) -> Dict[str, Any]:
    """Create a started participant for a cohort link, enforcing per-assessment uniqueness."""
    group_token = (request.group_token or "").strip()
    full_name = (request.full_name or "").strip()
    email = (request.email or "").strip().lower()
    employee_code = (request.employee_code or "").strip()
    if not group_token or not full_name or not email or not employee_code:
        raise MissingFieldsError()

    now = datetime.now(timezone.utc)
    try:
        with session_scope() as session:
            group = participant_repository.get_group_by_link_token(session, group_token)
            if group is None:
                raise InvalidLinkError()

            violation = _window_violation(group, now)
            if violation is not None:
                code, message = _REGISTRATION_CODES[violation]
                raise AccessRestrictedError(message, code=code)

            conflict = participant_repository.find_registration_conflict(
                session,
                organization_id=group.organization_id,
                assessment_id=group.assessment_id,
                employee_code=employee_code,
                email=email,
            )
            if conflict == "employee_code":
                raise DuplicateRegistrationError("Employee code already used", code="DUPLICATE_CODE")
            if conflict == "email":
                raise DuplicateRegistrationError("Email already used", code="DUPLICATE_EMAIL")

            participant = participant_repository.create_registered(
                session,
                group,
                full_name=full_name,
                email=email,
                employee_code=employee_code,
                department=(request.department or "").strip() or None,
                job_title=(request.job_title or "").strip() or None,
            )
            participant_id = participant.id
            assessment_id = group.assessment_id
            group_id = group.id
    except IntegrityError as exc:
        logger.warning("Registration for group token collided with an existing participant: %s", exc.orig)
        raise DuplicateRegistrationError(code="DUPLICATE") from exc

    logger.info("Participant registered: participant=%s group=%s", participant_id, group_id)
    emit_event(
        "participant_registered",
        participant_id=participant_id,
        assessment_id=assessment_id,
        group_id=group_id,
    )
    return {"success": True, "participantId": participant_id}


__all__ = ["RegistrationRequest", "load_session", "register_participant"]
