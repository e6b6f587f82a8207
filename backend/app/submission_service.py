"""Scoring Service: grade a participant's submission exactly once."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from .ai_report import request_narrative
from .config import Settings
from .db.session import session_scope
from .errors import (
    AlreadySubmittedError,
    AssessmentMismatchError,
    AssessmentServiceError,
    MissingFieldsError,
    ParticipantNotFoundError,
    QuestionLoadError,
    ResponseSaveError,
)
from .repositories.participants import participant_repository
from .score_summary import AssessmentConfig, ResultsPayload, SubmissionType, SubmittedAnswer
from .scoring import grade_answers
from .telemetry import emit_event


logger = logging.getLogger(__name__)


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    participant_id: Optional[str] = Field(None, alias="participantId")
    assessment_id: Optional[str] = Field(None, alias="assessmentId")
    answers: Optional[List[SubmittedAnswer]] = None
    submission_type: SubmissionType = Field("normal", alias="submissionType")


class SubmitResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    show_results: bool = Field(False, alias="showResults")
    results: Optional[ResultsPayload] = None


def submit_assessment(
    request: SubmitRequest,
    *,
    settings: Settings,
    ai_client: Optional[httpx.Client] = None,
) -> SubmitResponse:
    try:
        return _submit(request, settings=settings, ai_client=ai_client)
    except AssessmentServiceError as exc:
        emit_event(
            "assessment_submission_rejected",
            participant_id=request.participant_id,
            assessment_id=request.assessment_id,
            status_code=exc.status_code,
            error=exc.message,
        )
        raise


def _submit(
    request: SubmitRequest,
    *,
    settings: Settings,
    ai_client: Optional[httpx.Client],
) -> SubmitResponse:
    participant_id = (request.participant_id or "").strip()
    assessment_id = (request.assessment_id or "").strip()
    if not participant_id or not assessment_id or request.answers is None:
        raise MissingFieldsError()

    with session_scope(commit=False) as session:
        participant = participant_repository.get(session, participant_id)
        if participant is None:
            raise ParticipantNotFoundError()
        if participant.status == "completed":
            raise AlreadySubmittedError()
        assessment = participant.assessment
        if assessment is None or assessment.id != assessment_id:
            raise AssessmentMismatchError()

        try:
            questions = participant_repository.load_scoring_questions(session, assessment.id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load questions for assessment %s", assessment.id)
            raise QuestionLoadError() from exc

        config = AssessmentConfig.from_assessment(
            is_graded=assessment.is_graded,
            language=assessment.language,
            config=assessment.config,
        )
        assessment_type = assessment.type
        participant_name = participant.full_name

    outcome = grade_answers(questions, request.answers, is_graded=config.is_graded)

    ai_report_text: Optional[str] = None
    if config.ai_feedback_enabled:
        ai_report_text = request_narrative(
            settings,
            outcome.summary,
            assessment_type=assessment_type,
            language=config.language,
            participant_id=participant_id,
            participant_name=participant_name,
            client=ai_client,
        )

    # Responses and the completion flip commit together; a losing concurrent
    # submission rolls back its response rows along with its failed update.
    try:
        with session_scope() as session:
            inserted = participant_repository.insert_responses(session, participant_id, outcome.responses)
            participant_repository.mark_completed(
                session,
                participant_id,
                summary=outcome.summary,
                ai_report_text=ai_report_text,
                submission_type=request.submission_type,
            )
    except SQLAlchemyError as exc:
        logger.exception("Failed to save responses for participant %s", participant_id)
        raise ResponseSaveError() from exc

    logger.info(
        "Assessment submitted: participant=%s assessment=%s responses=%d kind=%s",
        participant_id,
        assessment_id,
        inserted,
        outcome.summary.kind,
    )
    emit_event(
        "assessment_submitted",
        participant_id=participant_id,
        assessment_id=assessment_id,
        responses=inserted,
        kind=outcome.summary.kind,
        submission_type=request.submission_type,
        ai_report=ai_report_text is not None,
    )

    if not config.show_results_to_employee:
        return SubmitResponse(success=True, show_results=False, results=None)
    return SubmitResponse(
        success=True,
        show_results=True,
        results=ResultsPayload(
            score_summary=outcome.summary,
            ai_report=ai_report_text,
            allow_pdf_download=config.allow_employee_pdf_download,
        ),
    )


__all__ = ["SubmitRequest", "SubmitResponse", "submit_assessment"]
