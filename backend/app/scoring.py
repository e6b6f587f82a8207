"""Grading and aggregation for submitted assessment answers."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .score_summary import (
    AnswerValue,
    Grade,
    GradedScoreSummary,
    SubmittedAnswer,
    TraitScoreSummary,
)


logger = logging.getLogger(__name__)

LIKERT_MIN = 1
LIKERT_MAX = 5

SJT_CATEGORY_SCORES: Dict[str, int] = {
    "Most Effective": 4,
    "Effective": 3,
    "Ineffective": 2,
    "Least Effective": 1,
}

_GRADE_THRESHOLDS: Sequence[tuple[int, Grade]] = (
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
)


@dataclass(frozen=True)
class ScoringQuestion:
    """The answer-key view of a question; never sent to participants."""

    question_id: str
    question_type: str
    options: Sequence[Mapping[str, Any]]
    correct_answer: Optional[Mapping[str, Any]]


@dataclass(frozen=True)
class ResponseRecord:
    question_id: str
    value: AnswerValue
    is_correct: Optional[bool]
    score_value: Optional[float]


@dataclass(frozen=True)
class GradingOutcome:
    responses: List[ResponseRecord]
    summary: Union[GradedScoreSummary, TraitScoreSummary]


@dataclass
class _TraitTotals:
    total: float = 0.0
    count: int = 0


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def letter_grade(percentage: float) -> Grade:
    for threshold, grade in _GRADE_THRESHOLDS:
        if percentage >= threshold:
            return grade
    return "F"


def score_percentage(total_score: float, total_possible: float) -> int:
    if total_possible <= 0:
        return 0
    return int(_round_half_up(total_score * 100 / total_possible))


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _option_score(option: Mapping[str, Any]) -> float:
    score = option.get("score")
    if isinstance(score, (int, float)) and not isinstance(score, bool):
        return score
    category = option.get("score_category")
    if isinstance(category, str):
        return SJT_CATEGORY_SCORES.get(category, 0)
    return 0


def is_sjt_question(question: ScoringQuestion) -> bool:
    if question.question_type == "sjt_ranking":
        return True
    if not question.options:
        return False
    first = question.options[0]
    if not isinstance(first, Mapping):
        return False
    return first.get("score") is not None or bool(first.get("score_category"))


class _Aggregator:
    def __init__(self) -> None:
        self.total_score: float = 0
        self.total_possible: float = 0
        self.correct_count = 0
        self.traits: Dict[str, _TraitTotals] = defaultdict(_TraitTotals)

    def sjt(self, question: ScoringQuestion, value: AnswerValue) -> tuple[Optional[bool], Optional[float]]:
        index = _as_index(value)
        options = list(question.options)
        if index is None or not 0 <= index < len(options):
            return None, None
        max_score = max(_option_score(option) for option in options)
        selected = _option_score(options[index])
        self.total_score += selected
        self.total_possible += max_score
        is_correct = selected == max_score
        if is_correct:
            self.correct_count += 1
        return is_correct, float(selected)

    def indexed(self, correct_index: int, value: AnswerValue) -> tuple[Optional[bool], Optional[float]]:
        is_correct = not isinstance(value, list) and value == correct_index
        self.total_possible += 1
        if is_correct:
            self.total_score += 1
            self.correct_count += 1
        return is_correct, 1.0 if is_correct else 0.0

    def trait(self, key: Mapping[str, Any], value: AnswerValue) -> tuple[Optional[bool], Optional[float]]:
        likert = _as_index(value)
        if likert is None or not LIKERT_MIN <= likert <= LIKERT_MAX:
            logger.debug("Ignoring out-of-range Likert value %r for trait %s", value, key.get("trait"))
            return None, None
        adjusted = (LIKERT_MAX + LIKERT_MIN - likert) if key.get("direction") == "negative" else likert
        totals = self.traits[str(key["trait"])]
        totals.total += adjusted
        totals.count += 1
        return None, float(adjusted)

    def graded_summary(self) -> GradedScoreSummary:
        percentage = score_percentage(self.total_score, self.total_possible)
        return GradedScoreSummary(
            total_score=self.total_score,
            total_possible=self.total_possible,
            correct_count=self.correct_count,
            percentage=percentage,
            grade=letter_grade(percentage),
        )

    def trait_summary(self) -> TraitScoreSummary:
        averages = {
            trait: _round_half_up(totals.total / totals.count, 2) if totals.count else 0.0
            for trait, totals in self.traits.items()
        }
        return TraitScoreSummary(traits=averages)


def grade_answers(
    questions: Mapping[str, ScoringQuestion],
    answers: Iterable[SubmittedAnswer],
    *,
    is_graded: bool,
) -> GradingOutcome:
    """Grade answers against their answer keys and build the score summary.

    Answers that reference unknown questions are dropped, as are repeated
    answers for a question already seen. Questions whose answer key is
    missing or unusable still get a response record but never count
    towards totals.
    """
    aggregator = _Aggregator()
    responses: List[ResponseRecord] = []
    seen: set[str] = set()

    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            logger.debug("Dropping answer for unknown question %s", answer.question_id)
            continue
        if answer.question_id in seen:
            continue
        seen.add(answer.question_id)

        key = question.correct_answer or {}
        correct_index = _as_index(key.get("index"))
        is_correct: Optional[bool] = None
        score_value: Optional[float] = None

        if is_graded and is_sjt_question(question):
            is_correct, score_value = aggregator.sjt(question, answer.value)
        elif is_graded and correct_index is not None:
            is_correct, score_value = aggregator.indexed(correct_index, answer.value)
        elif isinstance(key.get("trait"), str) and key["trait"].strip():
            is_correct, score_value = aggregator.trait(key, answer.value)

        responses.append(
            ResponseRecord(
                question_id=answer.question_id,
                value=answer.value,
                is_correct=is_correct,
                score_value=score_value,
            )
        )

    summary = aggregator.graded_summary() if is_graded else aggregator.trait_summary()
    return GradingOutcome(responses=responses, summary=summary)


__all__ = [
    "GradingOutcome",
    "LIKERT_MAX",
    "LIKERT_MIN",
    "ResponseRecord",
    "SJT_CATEGORY_SCORES",
    "ScoringQuestion",
    "grade_answers",
    "is_sjt_question",
    "letter_grade",
    "score_percentage",
]
