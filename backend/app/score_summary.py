"""Result and configuration models shared by the scorer, the API and the delivery client."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


Grade = Literal["A", "B", "C", "D", "F"]
Language = Literal["en", "ar"]
SessionStatus = Literal["invited", "started", "completed"]
SubmissionType = Literal["normal", "auto_submitted", "time_expired"]
AnswerValue = Union[int, List[int]]

GRADE_ABBREVIATIONS: Dict[str, str] = {
    "A": "O",
    "B": "EE",
    "C": "ME",
    "D": "BE",
    "F": "DM",
}

GRADE_LABELS: Dict[str, str] = {
    "A": "Outstanding",
    "B": "Exceed Expectations",
    "C": "Meet Expectations",
    "D": "Below Expectations",
    "F": "Doesn't Meet",
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GradedScoreSummary(_CamelModel):
    """Correctness-based outcome for graded assessments."""

    kind: Literal["graded"] = "graded"
    total_score: Union[int, float] = Field(alias="totalScore")
    total_possible: Union[int, float] = Field(alias="totalPossible")
    correct_count: int = Field(alias="correctCount", ge=0)
    percentage: int
    grade: Grade


class TraitScoreSummary(_CamelModel):
    """Per-trait Likert averages for profile assessments."""

    kind: Literal["trait"] = "trait"
    traits: Dict[str, float] = Field(default_factory=dict)


ScoreSummary = Annotated[
    Union[GradedScoreSummary, TraitScoreSummary],
    Field(discriminator="kind"),
]

_summary_adapter: TypeAdapter[Any] = TypeAdapter(ScoreSummary)


def parse_score_summary(data: Mapping[str, Any] | None) -> Optional[Union[GradedScoreSummary, TraitScoreSummary]]:
    """Load a persisted summary, tagging rows written before the ``kind`` field existed."""
    if not data:
        return None
    payload = dict(data)
    if "kind" not in payload:
        payload["kind"] = "trait" if "traits" in payload else "graded"
    return _summary_adapter.validate_python(payload)


def dump_score_summary(summary: Union[GradedScoreSummary, TraitScoreSummary]) -> Dict[str, Any]:
    return summary.model_dump(mode="json", by_alias=True)


def grade_with_abbreviation(grade: str) -> str:
    abbreviation = GRADE_ABBREVIATIONS.get(grade)
    return f"{grade} ({abbreviation})" if abbreviation else grade


def grade_full_label(grade: str) -> str:
    label = GRADE_LABELS.get(grade)
    abbreviation = GRADE_ABBREVIATIONS.get(grade)
    return f"{label} ({abbreviation})" if label and abbreviation else grade


class AssessmentConfig(_CamelModel):
    """Assessment settings the delivery and scoring flows depend on."""

    is_graded: bool = Field(True, alias="isGraded")
    language: Language = "en"
    ai_feedback_enabled: bool = Field(False, alias="aiFeedbackEnabled")
    show_results_to_employee: bool = Field(False, alias="showResultsToEmployee")
    allow_employee_pdf_download: bool = Field(False, alias="allowEmployeePdfDownload")
    time_limit_minutes: Optional[float] = Field(None, alias="timeLimitMinutes", gt=0)

    @classmethod
    def from_assessment(cls, *, is_graded: bool, language: str | None, config: Mapping[str, Any] | None) -> "AssessmentConfig":
        raw = dict(config or {})
        time_limit = raw.get("timeLimitMinutes", raw.get("timeLimit"))
        if not isinstance(time_limit, (int, float)) or isinstance(time_limit, bool) or time_limit <= 0:
            time_limit = None
        return cls(
            is_graded=bool(is_graded),
            language="ar" if language == "ar" else "en",
            ai_feedback_enabled=bool(raw.get("aiFeedbackEnabled", False)),
            show_results_to_employee=bool(raw.get("showResultsToEmployee", False)),
            allow_employee_pdf_download=bool(raw.get("allowEmployeePdfDownload", False)),
            time_limit_minutes=time_limit,
        )


class SubmittedAnswer(_CamelModel):
    question_id: str = Field(alias="questionId", min_length=1)
    value: AnswerValue


class ResultsPayload(_CamelModel):
    score_summary: ScoreSummary = Field(alias="scoreSummary")
    ai_report: Optional[str] = Field(None, alias="aiReport")
    allow_pdf_download: bool = Field(False, alias="allowPdfDownload")


__all__ = [
    "AnswerValue",
    "AssessmentConfig",
    "GRADE_ABBREVIATIONS",
    "GRADE_LABELS",
    "Grade",
    "GradedScoreSummary",
    "Language",
    "ResultsPayload",
    "ScoreSummary",
    "SessionStatus",
    "SubmissionType",
    "SubmittedAnswer",
    "TraitScoreSummary",
    "dump_score_summary",
    "grade_full_label",
    "grade_with_abbreviation",
    "parse_score_summary",
]
