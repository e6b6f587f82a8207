from __future__ import annotations

import json

import httpx
import pytest

from app.ai_report import ARABIC_INSTRUCTION, NarrativeError, build_prompt, generate_narrative, request_narrative
from app.config import Settings
from app.score_summary import GradedScoreSummary, TraitScoreSummary
from app.telemetry import TelemetryEvent, clear_listeners, register_listener


def _settings(**overrides) -> Settings:
    values = {
        "QIYAS_AI_API_KEY": "test-key",
        "QIYAS_AI_GATEWAY_URL": "https://ai.example/v1/chat/completions",
        "QIYAS_AI_MODEL": "narrator-small",
    }
    values.update(overrides)
    return Settings(**values)


GRADED = GradedScoreSummary(total_score=8, total_possible=10, correct_count=8, percentage=80, grade="B")
TRAITS = TraitScoreSummary(traits={"Openness": 3.5, "Grit": 4.0})


def test_graded_prompt_mentions_score_and_name() -> None:
    prompt = build_prompt(GRADED, assessment_type="cognitive", language="en", participant_name="Omar")
    assert "Omar" in prompt
    assert "Score: 80% (8/10 correct)" in prompt
    assert "Grade: B" in prompt
    assert "Areas for improvement" in prompt
    assert ARABIC_INSTRUCTION not in prompt


def test_trait_prompt_in_arabic_lists_traits() -> None:
    prompt = build_prompt(TRAITS, assessment_type="personality", language="ar", participant_name=None)
    assert "Openness: 3.5/5" in prompt
    assert "workplace" in prompt
    assert "Employee" in prompt
    assert prompt.rstrip().endswith(ARABIC_INSTRUCTION)


def test_generate_narrative_posts_chat_completion() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Well done, Omar.  "}}]})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    text = generate_narrative(_settings(), "prompt body", client=client)

    assert text == "Well done, Omar."
    assert captured["url"] == "https://ai.example/v1/chat/completions"
    assert captured["auth"] == "Bearer test-key"
    assert captured["body"]["model"] == "narrator-small"
    assert captured["body"]["messages"][0]["role"] == "system"
    assert captured["body"]["messages"][1] == {"role": "user", "content": "prompt body"}


def test_generate_narrative_requires_api_key() -> None:
    settings = Settings(QIYAS_AI_API_KEY=None)
    with pytest.raises(NarrativeError):
        generate_narrative(settings, "prompt", client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200))))


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(429, json={"error": "rate limited"}),
        httpx.Response(402, json={"error": "payment required"}),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
        httpx.Response(200, content=b"not json"),
    ],
)
def test_generate_narrative_failures_raise(response: httpx.Response) -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: response))
    with pytest.raises(NarrativeError):
        generate_narrative(_settings(), "prompt", client=client)


def test_timeout_becomes_narrative_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with pytest.raises(NarrativeError):
        generate_narrative(_settings(QIYAS_AI_TIMEOUT_MS=5), "prompt", client=client)


def test_request_narrative_swallows_failures_and_reports_them() -> None:
    events: list[TelemetryEvent] = []
    register_listener(events.append)
    try:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        result = request_narrative(
            _settings(),
            GRADED,
            assessment_type="cognitive",
            language="en",
            participant_id="p-1",
            participant_name="Omar",
            client=client,
        )
    finally:
        clear_listeners()

    assert result is None
    assert [event.name for event in events] == ["ai_report_failed"]
    assert events[0].payload["participant_id"] == "p-1"


def test_request_narrative_returns_text_on_success() -> None:
    events: list[TelemetryEvent] = []
    register_listener(events.append)
    try:
        client = httpx.Client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "Profile summary"}}]})
            )
        )
        result = request_narrative(
            _settings(),
            TRAITS,
            assessment_type="personality",
            language="en",
            participant_id="p-2",
            participant_name="Sara",
            client=client,
        )
    finally:
        clear_listeners()

    assert result == "Profile summary"
    assert events[0].name == "ai_report_generated"
    assert events[0].payload["characters"] == len("Profile summary")
