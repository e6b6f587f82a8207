"""AI-written feedback narratives for completed assessments."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, List, Optional, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

from .config import Settings
from .score_summary import GradedScoreSummary, Language, TraitScoreSummary
from .telemetry import emit_event

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an HR assessment specialist who provides constructive, professional feedback on assessment results."
)
ARABIC_INSTRUCTION = "Write the entire response in Arabic."
MIN_TIMEOUT_MS = 1000


class NarrativeError(RuntimeError):
    """Raised when the text-generation service cannot produce a narrative."""


class _ChatMessage(BaseModel):
    content: Optional[str] = None


class _ChatChoice(BaseModel):
    message: _ChatMessage


class ChatCompletionPayload(BaseModel):
    choices: List[_ChatChoice] = Field(default_factory=list)


def build_prompt(
    summary: Union[GradedScoreSummary, TraitScoreSummary],
    *,
    assessment_type: str,
    language: Language,
    participant_name: Optional[str],
) -> str:
    name = (participant_name or "").strip() or "Employee"
    language_line = ARABIC_INSTRUCTION if language == "ar" else ""

    if isinstance(summary, GradedScoreSummary):
        body = (
            f"Generate a brief, encouraging feedback report for {name} who completed a {assessment_type} assessment.\n"
            f"Score: {summary.percentage}% ({summary.correct_count}/{summary.total_possible} correct)\n"
            f"Grade: {summary.grade}\n\n"
            "Provide:\n"
            f'1. A personalized greeting using the employee\'s name "{name}"\n'
            "2. A summary of their performance\n"
            "3. Key strengths observed\n"
            "4. Areas for improvement\n"
            "5. Encouragement for next steps\n\n"
            "Keep it professional, constructive, and under 200 words. Address the employee by their name throughout."
        )
    else:
        trait_list = ", ".join(f"{trait}: {score}/5" for trait, score in summary.traits.items())
        body = (
            f"Generate a personality/behavioral profile summary for {name}.\n"
            f"Assessment type: {assessment_type}\n"
            f"Trait scores (out of 5): {trait_list}\n\n"
            "Provide:\n"
            f'1. A personalized greeting using the employee\'s name "{name}"\n'
            "2. Overview of their profile\n"
            "3. Key strengths\n"
            "4. Potential areas for development\n"
            "5. How these traits might manifest in the workplace\n\n"
            "Keep it professional, insightful, and under 200 words. Address the employee by their name throughout."
        )
    return f"{body}\n{language_line}".rstrip() + "\n"


def generate_narrative(
    settings: Settings,
    prompt: str,
    *,
    client: Optional[httpx.Client] = None,
) -> str:
    if not settings.ai_api_key:
        raise NarrativeError("QIYAS_AI_API_KEY is not configured.")

    timeout_seconds = max(settings.ai_timeout_ms, MIN_TIMEOUT_MS) / 1000
    local_client = client or httpx.Client(timeout=timeout_seconds)
    close_client = client is None
    body: dict[str, Any] = {
        "model": settings.ai_model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
    }
    headers = {"Authorization": f"Bearer {settings.ai_api_key}"}
    try:
        response = local_client.post(settings.ai_gateway_url, json=body, headers=headers, timeout=timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise NarrativeError(f"AI request failed: {exc}") from exc
    finally:
        if close_client:
            local_client.close()

    try:
        parsed = ChatCompletionPayload.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise NarrativeError(f"AI service returned invalid payload: {exc}") from exc

    text = (parsed.choices[0].message.content or "").strip() if parsed.choices else ""
    if not text:
        raise NarrativeError("AI service returned an empty narrative.")
    return text


def request_narrative(
    settings: Settings,
    summary: Union[GradedScoreSummary, TraitScoreSummary],
    *,
    assessment_type: str,
    language: Language,
    participant_id: str,
    participant_name: Optional[str],
    client: Optional[httpx.Client] = None,
) -> Optional[str]:
    """Best-effort narrative; any failure yields ``None`` instead of an error."""
    prompt = build_prompt(
        summary,
        assessment_type=assessment_type,
        language=language,
        participant_name=participant_name,
    )
    started = perf_counter()
    try:
        text = generate_narrative(settings, prompt, client=client)
    except NarrativeError as exc:
        logger.warning("AI report generation failed for participant %s: %s", participant_id, exc)
        emit_event(
            "ai_report_failed",
            participant_id=participant_id,
            error=str(exc),
            exception_type=exc.__class__.__name__,
        )
        return None

    emit_event(
        "ai_report_generated",
        participant_id=participant_id,
        latency_ms=round((perf_counter() - started) * 1000.0, 2),
        characters=len(text),
    )
    return text


__all__ = [
    "NarrativeError",
    "build_prompt",
    "generate_narrative",
    "request_narrative",
]
