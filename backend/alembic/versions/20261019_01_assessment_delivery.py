"""Assessment delivery and scoring schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_assessment_delivery"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("primary_color", sa.String(length=32), nullable=True),
        sa.Column("primary_language", sa.String(length=8), nullable=False, server_default="en"),
    )

    op.create_table(
        "assessments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("organization_id", sa.String(length=36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=False, server_default="cognitive"),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("is_graded", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("config", sa.JSON(), nullable=False),
    )
    op.create_index("ix_assessments_organization_id", "assessments", ["organization_id"])

    op.create_table(
        "assessment_groups",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("organization_id", sa.String(length=36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assessment_id", sa.String(length=36), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("group_link_token", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_assessment_groups_assessment_id", "assessment_groups", ["assessment_id"])
    op.create_index("ix_assessment_groups_link_token", "assessment_groups", ["group_link_token"], unique=True)

    op.create_table(
        "questions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("assessment_id", sa.String(length=36), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="multiple_choice"),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("correct_answer", sa.JSON(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_questions_assessment_order", "questions", ["assessment_id", "order_index"])

    op.create_table(
        "participants",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("organization_id", sa.String(length=36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assessment_id", sa.String(length=36), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("assessment_groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("access_token", sa.String(length=64), nullable=True),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("employee_code", sa.String(length=64), nullable=True),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("job_title", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="invited"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("score_summary", sa.JSON(), nullable=True),
        sa.Column("ai_report_text", sa.Text(), nullable=True),
        sa.Column("submission_type", sa.String(length=32), nullable=True),
        sa.UniqueConstraint("assessment_id", "employee_code", name="uq_participant_assessment_code"),
        sa.UniqueConstraint("assessment_id", "email", name="uq_participant_assessment_email"),
    )
    op.create_index("ix_participants_access_token", "participants", ["access_token"], unique=True)
    op.create_index("ix_participants_group", "participants", ["group_id"])

    op.create_table(
        "responses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("participant_id", sa.String(length=36), sa.ForeignKey("participants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_id", sa.String(length=36), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("answer_data", sa.JSON(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.Column("score_value", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_responses_participant", "responses", ["participant_id"])


def downgrade() -> None:
    op.drop_index("ix_responses_participant", table_name="responses")
    op.drop_table("responses")
    op.drop_index("ix_participants_group", table_name="participants")
    op.drop_index("ix_participants_access_token", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_questions_assessment_order", table_name="questions")
    op.drop_table("questions")
    op.drop_index("ix_assessment_groups_link_token", table_name="assessment_groups")
    op.drop_index("ix_assessment_groups_assessment_id", table_name="assessment_groups")
    op.drop_table("assessment_groups")
    op.drop_index("ix_assessments_organization_id", table_name="assessments")
    op.drop_table("assessments")
    op.drop_table("organizations")
