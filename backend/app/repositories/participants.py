"""Database access for participants, questions, and response records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import func, insert, select, update
from sqlalchemy.orm import Session, selectinload

from ..db.models import (
    AssessmentGroupModel,
    AssessmentModel,
    ParticipantModel,
    QuestionModel,
    ResponseModel,
)
from ..errors import AlreadySubmittedError
from ..score_summary import GradedScoreSummary, SubmissionType, TraitScoreSummary, dump_score_summary
from ..scoring import ResponseRecord, ScoringQuestion


def _participant_query():
    return select(ParticipantModel).options(
        selectinload(ParticipantModel.assessment).selectinload(AssessmentModel.organization),
        selectinload(ParticipantModel.group),
        selectinload(ParticipantModel.organization),
    )


class ParticipantRepository:
    """Query helpers; callers own the session and its transaction."""

    def get(self, session: Session, participant_id: str) -> ParticipantModel | None:
        stmt = _participant_query().where(ParticipantModel.id == participant_id)
        return session.execute(stmt).scalar_one_or_none()

    def get_by_access_token(self, session: Session, token: str) -> ParticipantModel | None:
        stmt = _participant_query().where(ParticipantModel.access_token == token)
        return session.execute(stmt).scalar_one_or_none()

    def get_group_by_link_token(self, session: Session, token: str) -> AssessmentGroupModel | None:
        stmt = (
            select(AssessmentGroupModel)
            .options(
                selectinload(AssessmentGroupModel.assessment).selectinload(AssessmentModel.organization),
                selectinload(AssessmentGroupModel.organization),
            )
            .where(AssessmentGroupModel.group_link_token == token)
        )
        return session.execute(stmt).scalar_one_or_none()

    def list_questions(self, session: Session, assessment_id: str) -> List[QuestionModel]:
        stmt = (
            select(QuestionModel)
            .where(QuestionModel.assessment_id == assessment_id)
            .order_by(QuestionModel.order_index.asc(), QuestionModel.id.asc())
        )
        return list(session.execute(stmt).scalars().all())

    def load_scoring_questions(self, session: Session, assessment_id: str) -> Dict[str, ScoringQuestion]:
        return {
            question.id: ScoringQuestion(
                question_id=question.id,
                question_type=question.type,
                options=list(question.options or []),
                correct_answer=dict(question.correct_answer) if question.correct_answer else None,
            )
            for question in self.list_questions(session, assessment_id)
        }

    def find_registration_conflict(
        self,
        session: Session,
        *,
        organization_id: str,
        assessment_id: str,
        employee_code: str,
        email: str,
    ) -> Optional[str]:
        """Return ``"employee_code"`` or ``"email"`` when either is already taken."""
        scope = (
            ParticipantModel.organization_id == organization_id,
            ParticipantModel.assessment_id == assessment_id,
        )
        by_code = session.execute(
            select(ParticipantModel.id).where(*scope, ParticipantModel.employee_code == employee_code).limit(1)
        ).first()
        if by_code is not None:
            return "employee_code"
        by_email = session.execute(
            select(ParticipantModel.id).where(*scope, func.lower(ParticipantModel.email) == email).limit(1)
        ).first()
        if by_email is not None:
            return "email"
        return None

    def create_registered(
        self,
        session: Session,
        group: AssessmentGroupModel,
        *,
        full_name: str,
        email: str,
        employee_code: str,
        department: Optional[str],
        job_title: Optional[str],
    ) -> ParticipantModel:
        model = ParticipantModel(
            organization_id=group.organization_id,
            assessment_id=group.assessment_id,
            group_id=group.id,
            full_name=full_name,
            email=email,
            employee_code=employee_code,
            department=department,
            job_title=job_title,
            status="started",
            started_at=datetime.now(timezone.utc),
        )
        session.add(model)
        session.flush()
        return model

    def mark_started(self, session: Session, participant_id: str) -> bool:
        result = session.execute(
            update(ParticipantModel)
            .where(ParticipantModel.id == participant_id, ParticipantModel.status == "invited")
            .values(status="started", started_at=datetime.now(timezone.utc))
        )
        return bool(result.rowcount)

    def insert_responses(self, session: Session, participant_id: str, records: Iterable[ResponseRecord]) -> int:
        rows = [
            {
                "participant_id": participant_id,
                "question_id": record.question_id,
                "answer_data": {"value": record.value},
                "is_correct": record.is_correct,
                "score_value": record.score_value,
            }
            for record in records
        ]
        if rows:
            session.execute(insert(ResponseModel), rows)
        return len(rows)

    def mark_completed(
        self,
        session: Session,
        participant_id: str,
        *,
        summary: Union[GradedScoreSummary, TraitScoreSummary],
        ai_report_text: Optional[str],
        submission_type: SubmissionType,
    ) -> datetime:
        """Flip the session to completed unless another submission already did."""
        completed_at = datetime.now(timezone.utc)
        result = session.execute(
            update(ParticipantModel)
            .where(ParticipantModel.id == participant_id, ParticipantModel.status != "completed")
            .values(
                status="completed",
                completed_at=completed_at,
                score_summary=dump_score_summary(summary),
                ai_report_text=ai_report_text,
                submission_type=submission_type,
            )
        )
        if not result.rowcount:
            raise AlreadySubmittedError()
        return completed_at


participant_repository = ParticipantRepository()

__all__ = ["ParticipantRepository", "participant_repository"]
