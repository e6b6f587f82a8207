from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from app.config import get_settings
from app.db.base import Base
from app.db.models import (
    AssessmentGroupModel,
    AssessmentModel,
    OrganizationModel,
    ParticipantModel,
    QuestionModel,
)
from app.db.session import dispose_engine, get_engine, session_scope
from app.telemetry import clear_listeners


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    db_path = tmp_path / "qiyas.db"
    monkeypatch.setenv("QIYAS_DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.delenv("QIYAS_AI_API_KEY", raising=False)
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine
    clear_listeners()
    dispose_engine()
    get_settings.cache_clear()


@dataclass
class Seeded:
    organization_id: str
    assessment_id: str
    participant_id: str
    access_token: str
    question_ids: List[str] = field(default_factory=list)
    group_id: Optional[str] = None
    group_token: Optional[str] = None


def graded_questions(count: int = 4) -> List[Dict[str, Any]]:
    return [
        {
            "text": f"Question {index + 1}",
            "options": [{"text": "A"}, {"text": "B"}, {"text": "C"}, {"text": "D"}],
            "correct_answer": {"index": index % 4},
        }
        for index in range(count)
    ]


def seed_assessment(
    *,
    questions: Optional[List[Dict[str, Any]]] = None,
    is_graded: bool = True,
    language: str = "en",
    config: Optional[Dict[str, Any]] = None,
    assessment_type: str = "cognitive",
    participant_status: str = "invited",
    group: Optional[Dict[str, Any]] = None,
    access_token: str = "participant-token",
) -> Seeded:
    """Insert one organization, assessment, optional cohort group and invited participant."""
    with session_scope() as session:
        organization = OrganizationModel(name="Acme Holdings", primary_color="#123456", primary_language=language)
        session.add(organization)
        session.flush()

        assessment = AssessmentModel(
            organization_id=organization.id,
            title="Workplace Reasoning",
            type=assessment_type,
            language=language,
            is_graded=is_graded,
            config=config or {},
        )
        session.add(assessment)
        session.flush()

        question_ids: List[str] = []
        for index, item in enumerate(questions if questions is not None else graded_questions()):
            question = QuestionModel(
                assessment_id=assessment.id,
                type=item.get("type", "multiple_choice"),
                text=item.get("text", f"Question {index + 1}"),
                options=item.get("options", []),
                correct_answer=item.get("correct_answer"),
                order_index=index,
            )
            session.add(question)
            session.flush()
            question_ids.append(question.id)

        group_model: Optional[AssessmentGroupModel] = None
        if group is not None:
            group_model = AssessmentGroupModel(
                organization_id=organization.id,
                assessment_id=assessment.id,
                name=group.get("name", "Spring cohort"),
                group_link_token=group.get("token", "group-token"),
                is_active=group.get("is_active", True),
                start_date=group.get("start_date"),
                end_date=group.get("end_date"),
            )
            session.add(group_model)
            session.flush()

        participant = ParticipantModel(
            organization_id=organization.id,
            assessment_id=assessment.id,
            group_id=group_model.id if group_model else None,
            access_token=access_token,
            full_name="Layla Haddad",
            email="layla@example.com",
            employee_code="E-100",
            status=participant_status,
            started_at=datetime.now(timezone.utc) if participant_status != "invited" else None,
        )
        session.add(participant)
        session.flush()

        return Seeded(
            organization_id=organization.id,
            assessment_id=assessment.id,
            participant_id=participant.id,
            access_token=access_token,
            question_ids=question_ids,
            group_id=group_model.id if group_model else None,
            group_token=group_model.group_link_token if group_model else None,
        )


def load_participant(participant_id: str) -> ParticipantModel:
    with session_scope(commit=False) as session:
        participant = session.get(ParticipantModel, participant_id)
        assert participant is not None
        session.expunge(participant)
        return participant
