"""Session controller state machine, driven with an in-memory API double."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Dict, List, Optional

import pytest

from app.delivery.api_client import (
    AccessWindowError,
    ApiServerError,
    ApiTransportError,
    LinkNotFoundError,
    RegistrationConflictError,
    RequestRejectedError,
    SessionPayload,
    SubmitResult,
)
from app.delivery.controller import RegistrationForm, SessionController, SessionState, SubmitCause
from app.delivery.countdown import Countdown
from app.delivery.page import BEFORE_UNLOAD, VISIBILITY_HIDDEN, PageEvents


async def _yield(_: float) -> None:
    await asyncio.sleep(0)


def _session(
    *,
    questions: int = 3,
    config: Optional[Dict[str, Any]] = None,
    requires_registration: bool = False,
    participant: bool = True,
    language: str = "en",
) -> SessionPayload:
    return SessionPayload.model_validate(
        {
            "status": "ready",
            "requiresRegistration": requires_registration,
            "assessment": {
                "id": "assessment-1",
                "title": "Workplace Reasoning",
                "language": language,
                "config": config or {},
            },
            "questions": [
                {"id": f"q{i}", "type": "multiple_choice", "text": f"Question {i}", "options": [{"text": "A"}]}
                for i in range(1, questions + 1)
            ],
            "organization": {"id": "org-1", "name": "Acme Holdings", "language": language},
            "participant": {"id": "participant-1", "fullName": "Layla"} if participant else None,
        }
    )


class FakeApi:
    def __init__(
        self,
        session: Any,
        *,
        submit_outcomes: Optional[List[Any]] = None,
        register_outcomes: Optional[List[Any]] = None,
    ) -> None:
        self.session = session
        self.submit_outcomes = list(submit_outcomes or [])
        self.register_outcomes = list(register_outcomes or [])
        self.submit_calls: List[Dict[str, Any]] = []
        self.register_calls: List[Dict[str, Any]] = []

    async def load_session(self, token: str, *, group_link: bool = False) -> SessionPayload:
        if isinstance(self.session, Exception):
            raise self.session
        return self.session

    async def register(self, group_token: str, **form: Any) -> str:
        self.register_calls.append(form)
        outcome = self.register_outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def submit(self, participant_id, assessment_id, answers, *, submission_type="normal") -> SubmitResult:
        self.submit_calls.append(
            {
                "participant_id": participant_id,
                "assessment_id": assessment_id,
                "answers": list(answers),
                "submission_type": submission_type,
            }
        )
        await asyncio.sleep(0)
        outcome = self.submit_outcomes.pop(0) if self.submit_outcomes else SubmitResult(success=True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _controller(api: FakeApi, **kwargs: Any) -> SessionController:
    kwargs.setdefault("countdown_factory", partial(Countdown, sleep=_yield))
    return SessionController(api, "token-1", **kwargs)


def test_navigation_is_gated_on_answers() -> None:
    async def scenario() -> SessionController:
        controller = _controller(FakeApi(_session()))
        assert await controller.load() is SessionState.INTRO
        controller.start()
        assert controller.state is SessionState.QUESTIONS

        await controller.next()
        assert controller.current_index == 0
        assert controller.message == "Please select an answer"

        controller.answer("q1", 0)
        assert controller.message is None
        await controller.next()
        assert controller.current_index == 1

        controller.previous()
        assert controller.current_index == 0
        assert controller.answers == {"q1": 0}
        controller.previous()
        assert controller.current_index == 0
        return controller

    controller = asyncio.run(scenario())
    with pytest.raises(ValueError):
        controller.answer("unknown", 1)


def test_finishing_last_question_submits_once() -> None:
    api = FakeApi(_session(questions=2))
    states: List[SessionState] = []

    async def scenario() -> SessionController:
        controller = _controller(api, on_state_change=states.append)
        await controller.load()
        controller.start()
        controller.answer("q1", 1)
        await controller.next()
        controller.answer("q2", [0, 1])
        await controller.next()
        assert controller.request_submission(SubmitCause.FINISH) is None
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.COMPLETED
    assert states == [SessionState.INTRO, SessionState.QUESTIONS, SessionState.SUBMITTING, SessionState.COMPLETED]
    assert api.submit_calls == [
        {
            "participant_id": "participant-1",
            "assessment_id": "assessment-1",
            "answers": [{"questionId": "q1", "value": 1}, {"questionId": "q2", "value": [0, 1]}],
            "submission_type": "normal",
        }
    ]
    assert controller.screen()["title"] == "Thank You!"


def test_results_state_when_results_are_revealed() -> None:
    result = SubmitResult.model_validate(
        {
            "success": True,
            "showResults": True,
            "results": {
                "scoreSummary": {
                    "kind": "graded",
                    "totalScore": 1,
                    "totalPossible": 1,
                    "correctCount": 1,
                    "percentage": 100,
                    "grade": "A",
                },
                "aiReport": None,
                "allowPdfDownload": False,
            },
        }
    )
    api = FakeApi(_session(questions=1), submit_outcomes=[result])

    async def scenario() -> SessionController:
        controller = _controller(api)
        await controller.load()
        controller.start()
        controller.answer("q1", 0)
        await controller.next()
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.RESULTS
    assert controller.results is not None
    assert controller.results.score_summary.grade == "A"
    assert controller.screen() == {"title": "Your Results", "body": "Grade: Outstanding (O)", "direction": "ltr"}


def test_timer_expiry_mid_assessment_submits_partial_answers() -> None:
    api = FakeApi(_session(questions=10, config={"timeLimitMinutes": 0.05}))

    async def scenario() -> SessionController:
        controller = _controller(api)
        await controller.load()
        controller.start()
        assert controller.remaining_seconds == 3
        controller.answer("q1", 0)
        await controller.next()
        controller.answer("q2", 0)
        await controller.next()
        assert controller.current_index == 2

        while controller.state is SessionState.QUESTIONS:
            await asyncio.sleep(0)
        await controller.wait_for_submission()
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.COMPLETED
    assert controller.submission_cause is SubmitCause.TIMER
    assert len(api.submit_calls) == 1
    call = api.submit_calls[0]
    assert call["submission_type"] == "time_expired"
    assert [answer["questionId"] for answer in call["answers"]] == ["q1", "q2"]


def test_page_hidden_and_expiry_in_same_tick_submit_once() -> None:
    api = FakeApi(_session(questions=4, config={"timeLimitMinutes": 1}))
    page = PageEvents()

    async def scenario() -> SessionController:
        controller = _controller(api, page=page)
        await controller.load()
        controller.start()
        controller.answer("q1", 0)
        assert page.listener_count(VISIBILITY_HIDDEN) == 1

        page.dispatch_visibility_hidden()
        countdown = controller.countdown
        assert countdown is not None
        while not countdown.expired:
            countdown.tick()
        page.dispatch_visibility_hidden()

        await controller.wait_for_submission()
        return controller

    controller = asyncio.run(scenario())
    assert len(api.submit_calls) == 1
    assert api.submit_calls[0]["submission_type"] == "auto_submitted"
    assert controller.submission_cause is SubmitCause.PAGE_HIDDEN
    assert controller.state is SessionState.COMPLETED
    assert page.listener_count(VISIBILITY_HIDDEN) == 0
    assert page.listener_count(BEFORE_UNLOAD) == 0


def test_before_unload_warns_only_while_answering() -> None:
    page = PageEvents()
    api = FakeApi(_session(questions=1))

    async def scenario() -> List[Optional[str]]:
        controller = _controller(api, page=page)
        await controller.load()
        before = page.dispatch_before_unload()
        controller.start()
        during = page.dispatch_before_unload()
        controller.answer("q1", 0)
        await controller.next()
        after = page.dispatch_before_unload()
        return [before, during, after]

    before, during, after = asyncio.run(scenario())
    assert before is None
    assert during is not None and "submit" in during
    assert after is None
    assert api.submit_calls and len(api.submit_calls) == 1


def test_transport_failure_returns_to_questions_for_retry() -> None:
    page = PageEvents()
    api = FakeApi(
        _session(questions=1, config={"timeLimitMinutes": 10}),
        submit_outcomes=[ApiTransportError("connection reset"), SubmitResult(success=True)],
    )

    async def scenario() -> SessionController:
        controller = _controller(api, page=page, countdown_factory=Countdown)
        await controller.load()
        controller.start()
        controller.answer("q1", 2)
        await controller.next()

        assert controller.state is SessionState.QUESTIONS
        assert controller.message == "Failed to submit assessment. Please try again."
        assert controller.answers == {"q1": 2}
        assert controller.countdown is not None and controller.countdown.running
        assert page.listener_count(VISIBILITY_HIDDEN) == 1

        await controller.next()
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.COMPLETED
    assert len(api.submit_calls) == 2
    assert page.listener_count(VISIBILITY_HIDDEN) == 0


def test_expired_session_retries_submission_from_any_question() -> None:
    api = FakeApi(
        _session(questions=10, config={"timeLimitMinutes": 0.05}),
        submit_outcomes=[ApiTransportError("connection reset"), SubmitResult(success=True)],
    )

    async def scenario() -> SessionController:
        controller = _controller(api)
        await controller.load()
        controller.start()
        controller.answer("q1", 0)
        await controller.next()
        controller.answer("q2", 1)
        await controller.next()

        while controller.state is SessionState.QUESTIONS:
            await asyncio.sleep(0)
        await controller.wait_for_submission()

        assert controller.state is SessionState.QUESTIONS
        assert controller.current_index == 2
        assert controller.time_expired
        assert controller.remaining_seconds == 0

        controller.answer("q3", 1)
        assert controller.answers == {"q1": 0, "q2": 1}

        await controller.next()
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.COMPLETED
    assert len(api.submit_calls) == 2
    retry = api.submit_calls[1]
    assert retry["submission_type"] == "time_expired"
    assert [answer["questionId"] for answer in retry["answers"]] == ["q1", "q2"]


def test_server_error_is_retryable() -> None:
    api = FakeApi(_session(questions=1), submit_outcomes=[ApiServerError("boom", status_code=500)])

    async def scenario() -> SessionController:
        controller = _controller(api)
        await controller.load()
        controller.start()
        controller.answer("q1", 0)
        await controller.next()
        return controller

    assert asyncio.run(scenario()).state is SessionState.QUESTIONS


def test_rejected_submission_shows_cannot_submit() -> None:
    api = FakeApi(
        _session(questions=1),
        submit_outcomes=[RequestRejectedError("Assessment already submitted", status_code=400)],
    )

    async def scenario() -> SessionController:
        controller = _controller(api)
        await controller.load()
        controller.start()
        controller.answer("q1", 0)
        await controller.next()
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.ERROR
    assert controller.message == "This assessment can no longer be submitted."
    assert controller.screen()["body"] == controller.message


def test_time_warnings_are_shown_once_each() -> None:
    api = FakeApi(_session(questions=2, config={"timeLimitMinutes": 6}))

    async def scenario() -> SessionController:
        controller = _controller(api, countdown_factory=Countdown)
        await controller.load()
        controller.start()
        countdown = controller.countdown
        assert countdown is not None
        for _ in range(360):
            countdown.tick()
        await controller.wait_for_submission()
        return controller

    controller = asyncio.run(scenario())
    assert controller.warnings == ["5 minutes remaining", "2 minutes remaining", "1 minute remaining"]
    assert controller.state is SessionState.COMPLETED
    assert api.submit_calls[0]["answers"] == []
    assert api.submit_calls[0]["submission_type"] == "time_expired"


@pytest.mark.parametrize(
    ("status", "expected"),
    [("not_started", SessionState.NOT_STARTED), ("expired", SessionState.EXPIRED), ("closed", SessionState.CLOSED)],
)
def test_restricted_windows_route_to_branded_states(status: str, expected: SessionState) -> None:
    error = AccessWindowError(
        "restricted",
        status_code=403,
        payload={
            "error": "restricted",
            "status": status,
            "startDate": "2030-01-05T08:00:00+00:00",
            "endDate": "2024-01-05T08:00:00+00:00",
            "organization": {"id": "org-1", "name": "Acme Holdings", "primaryColor": "#222222"},
            "assessment": {"title": "Workplace Reasoning", "language": "en"},
        },
    )
    controller = _controller(FakeApi(error))
    assert asyncio.run(controller.load()) is expected
    assert controller.organization is not None
    assert controller.organization.primary_color == "#222222"
    screen = controller.screen()
    assert "restricted" not in screen["body"]
    if status == "not_started":
        assert "2030-01-05" in screen["body"]
    if status == "closed":
        assert "Acme Holdings" in screen["body"]


def test_arabic_copy_for_restricted_window() -> None:
    error = AccessWindowError(
        "closed",
        status_code=403,
        payload={"status": "closed", "assessment": {"title": "تقييم", "language": "ar"}},
    )
    controller = _controller(FakeApi(error))
    asyncio.run(controller.load())
    assert controller.language == "ar"
    assert controller.screen()["title"] == "التقييم مغلق"
    assert controller.screen()["direction"] == "rtl"


@pytest.mark.parametrize(
    ("error", "message"),
    [
        (LinkNotFoundError("Invalid assessment link", status_code=404), "This assessment link is not valid"),
        (ApiTransportError("dns failure"), "We could not load this assessment"),
        (ApiServerError("Server error 500", status_code=500), "We could not load this assessment"),
    ],
)
def test_load_failures_route_to_error(error: Exception, message: str) -> None:
    controller = _controller(FakeApi(error))
    assert asyncio.run(controller.load()) is SessionState.ERROR
    assert controller.message is not None and controller.message.startswith(message)
    assert "dns" not in controller.message


def test_completed_session_routes_to_completed_or_results() -> None:
    completed = SessionPayload.model_validate({"status": "completed", "showResults": False})
    controller = _controller(FakeApi(completed))
    assert asyncio.run(controller.load()) is SessionState.COMPLETED

    with_results = SessionPayload.model_validate(
        {
            "status": "completed",
            "showResults": True,
            "results": {"scoreSummary": {"kind": "trait", "traits": {"Openness": 3.5}}},
        }
    )
    controller = _controller(FakeApi(with_results))
    assert asyncio.run(controller.load()) is SessionState.RESULTS


def test_registration_duplicate_then_retry() -> None:
    api = FakeApi(
        _session(requires_registration=True, participant=False),
        register_outcomes=[
            RegistrationConflictError("Employee code already used", status_code=409, payload={"code": "DUPLICATE_CODE"}),
            "participant-9",
        ],
    )

    async def scenario() -> SessionController:
        controller = _controller(api, group_link=True)
        assert await controller.load() is SessionState.REGISTER
        controller.start()
        assert controller.state is SessionState.REGISTER

        form = RegistrationForm(full_name="Noor", email="noor@example.com", employee_code="E-1")
        assert await controller.register(form) is False
        assert controller.state is SessionState.REGISTER
        assert controller.duplicate_reason == "DUPLICATE_CODE"
        assert controller.message == "This employee code has already been used for this assessment."

        form.employee_code = "E-2"
        assert await controller.register(form) is True
        return controller

    controller = asyncio.run(scenario())
    assert controller.state is SessionState.INTRO
    assert controller.participant_id == "participant-9"
    assert controller.duplicate_reason is None
    assert [call["employee_code"] for call in api.register_calls] == ["E-1", "E-2"]


def test_registration_requires_fields_without_calling_api() -> None:
    api = FakeApi(_session(requires_registration=True, participant=False))

    async def scenario() -> SessionController:
        controller = _controller(api, group_link=True)
        await controller.load()
        ok = await controller.register(RegistrationForm(full_name="", email="x@example.com", employee_code="E"))
        assert ok is False
        return controller

    controller = asyncio.run(scenario())
    assert controller.message == "Please fill in required fields"
    assert api.register_calls == []
