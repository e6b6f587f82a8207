"""ORM models backing assessment delivery and scoring."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


class OrganizationModel(TimestampMixin, Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    primary_language: Mapped[str] = mapped_column(String(8), default="en", nullable=False)

    assessments: Mapped[list["AssessmentModel"]] = relationship(back_populates="organization")


class AssessmentModel(TimestampMixin, Base):
    __tablename__ = "assessments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(64), default="cognitive", nullable=False)
    language: Mapped[str] = mapped_column(String(8), default="en", nullable=False)
    is_graded: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    config: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    organization: Mapped[OrganizationModel] = relationship(back_populates="assessments")
    questions: Mapped[list["QuestionModel"]] = relationship(
        back_populates="assessment", cascade="all, delete-orphan"
    )
    groups: Mapped[list["AssessmentGroupModel"]] = relationship(back_populates="assessment")


class AssessmentGroupModel(TimestampMixin, Base):
    __tablename__ = "assessment_groups"
    __table_args__ = (Index("ix_assessment_groups_link_token", "group_link_token", unique=True),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    assessment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    group_link_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    assessment: Mapped[AssessmentModel] = relationship(back_populates="groups")
    organization: Mapped[OrganizationModel] = relationship()


class QuestionModel(Base):
    __tablename__ = "questions"
    __table_args__ = (Index("ix_questions_assessment_order", "assessment_id", "order_index"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    assessment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), default="multiple_choice", nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    correct_answer: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    assessment: Mapped[AssessmentModel] = relationship(back_populates="questions")


class ParticipantModel(TimestampMixin, Base):
    __tablename__ = "participants"
    __table_args__ = (
        Index("ix_participants_access_token", "access_token", unique=True),
        Index("ix_participants_group", "group_id"),
        UniqueConstraint("assessment_id", "employee_code", name="uq_participant_assessment_code"),
        UniqueConstraint("assessment_id", "email", name="uq_participant_assessment_email"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    assessment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("assessment_groups.id", ondelete="SET NULL"), nullable=True
    )
    access_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    employee_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    department: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="invited", nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    score_summary: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ai_report_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    submission_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    assessment: Mapped[AssessmentModel] = relationship()
    group: Mapped[Optional[AssessmentGroupModel]] = relationship()
    organization: Mapped[OrganizationModel] = relationship()
    responses: Mapped[list["ResponseModel"]] = relationship(
        back_populates="participant", cascade="all, delete-orphan"
    )


class ResponseModel(Base):
    __tablename__ = "responses"
    __table_args__ = (Index("ix_responses_participant", "participant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    participant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    answer_data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    score_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    participant: Mapped[ParticipantModel] = relationship(back_populates="responses")


__all__ = [
    "AssessmentGroupModel",
    "AssessmentModel",
    "OrganizationModel",
    "ParticipantModel",
    "QuestionModel",
    "ResponseModel",
]
