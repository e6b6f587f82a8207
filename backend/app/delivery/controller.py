"""Participant session state machine: load, register, answer, submit, show the outcome."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

from ..score_summary import AnswerValue, AssessmentConfig, ResultsPayload, SubmissionType
from . import messages
from .api_client import (
    AccessWindowError,
    ApiServerError,
    ApiTransportError,
    AssessmentApiClient,
    Branding,
    DeliveryApiError,
    DeliveryQuestion,
    LinkNotFoundError,
    RegistrationConflictError,
)
from .countdown import Countdown
from .page import BEFORE_UNLOAD, VISIBILITY_HIDDEN, PageEvents


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    CLOSED = "closed"
    REGISTER = "register"
    INTRO = "intro"
    QUESTIONS = "questions"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    RESULTS = "results"


TERMINAL_STATES = frozenset(
    {
        SessionState.ERROR,
        SessionState.NOT_STARTED,
        SessionState.EXPIRED,
        SessionState.CLOSED,
        SessionState.COMPLETED,
        SessionState.RESULTS,
    }
)

_WINDOW_STATES = {
    "not_started": SessionState.NOT_STARTED,
    "expired": SessionState.EXPIRED,
    "closed": SessionState.CLOSED,
}


class SubmitCause(str, Enum):
    FINISH = "finish"
    TIMER = "timer"
    PAGE_HIDDEN = "page_hidden"


SUBMISSION_TYPES: Mapping[SubmitCause, SubmissionType] = {
    SubmitCause.FINISH: "normal",
    SubmitCause.TIMER: "time_expired",
    SubmitCause.PAGE_HIDDEN: "auto_submitted",
}


@dataclass
class RegistrationForm:
    full_name: str
    email: str
    employee_code: str
    department: Optional[str] = None
    job_title: Optional[str] = None


class SessionController:
    """Drives one participant through a single assessment attempt.

    All three submission triggers (finishing the last question, the
    countdown reaching zero, the page being hidden) go through
    :meth:`request_submission`, which only acts while the session is in
    ``questions``. Its first effective call moves the state to
    ``submitting`` before any I/O, so later triggers find the gate closed.
    """

    def __init__(
        self,
        api: AssessmentApiClient,
        token: str,
        *,
        group_link: bool = False,
        page: Optional[PageEvents] = None,
        countdown_factory: Callable[..., Countdown] = Countdown,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
    ) -> None:
        self.api = api
        self.token = token
        self.group_link = group_link
        self.page = page or PageEvents()
        self._countdown_factory = countdown_factory
        self._on_state_change = on_state_change

        self.state = SessionState.LOADING
        self.language = "en"
        self.organization: Optional[Branding] = None
        self.assessment_id: Optional[str] = None
        self.assessment_title: Optional[str] = None
        self.config = AssessmentConfig()
        self.questions: List[DeliveryQuestion] = []
        self.participant_id: Optional[str] = None
        self.current_index = 0
        self.answers: Dict[str, AnswerValue] = {}

        self.message: Optional[str] = None
        self.duplicate_reason: Optional[str] = None
        self.warnings: List[str] = []
        self.start_date: Optional[str] = None
        self.end_date: Optional[str] = None
        self.results: Optional[ResultsPayload] = None
        self.submission_cause: Optional[SubmitCause] = None

        self.countdown: Optional[Countdown] = None
        self._submission_task: Optional[asyncio.Task[None]] = None
        self._guards_installed = False

    # -- state helpers -------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        logger.debug("Session state %s -> %s", self.state.value, state.value)
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _fail(self, reason: str) -> None:
        self.message = messages.text(reason, self.language)
        self._set_state(SessionState.ERROR)

    @property
    def current_question(self) -> Optional[DeliveryQuestion]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def remaining_seconds(self) -> Optional[int]:
        return self.countdown.remaining if self.countdown is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def time_expired(self) -> bool:
        return self.countdown is not None and self.countdown.expired

    def screen(self) -> Mapping[str, str]:
        """Copy for the current terminal screen plus its text direction."""
        direction = "rtl" if messages.is_rtl(self.language) else "ltr"
        if self.state is SessionState.ERROR:
            return {
                "title": messages.text("error_title", self.language),
                "body": self.message or messages.text("load_failed", self.language),
                "direction": direction,
            }
        screen = dict(
            messages.terminal_screen(
                self.state.value,
                self.language,
                organization_name=self.organization.name if self.organization else None,
                start_date=self.start_date,
                end_date=self.end_date,
            )
        )
        summary = self.results.score_summary if self.results is not None else None
        if self.state is SessionState.RESULTS and summary is not None and summary.kind == "graded":
            screen["body"] = messages.grade_line(summary.grade, self.language)
        screen["direction"] = direction
        return screen

    # -- loading and registration -------------------------------------

    async def load(self) -> SessionState:
        if self.state is not SessionState.LOADING:
            return self.state
        if not self.token:
            self._fail("invalid_link")
            return self.state

        try:
            payload = await self.api.load_session(self.token, group_link=self.group_link)
        except AccessWindowError as exc:
            self._apply_window_error(exc)
            return self.state
        except LinkNotFoundError:
            self._fail("invalid_link")
            return self.state
        except DeliveryApiError as exc:
            logger.warning("Failed to load assessment session: %s", exc)
            self._fail("load_failed")
            return self.state

        self.organization = payload.organization
        if payload.assessment is not None:
            self.assessment_id = payload.assessment.id
            self.assessment_title = payload.assessment.title
            self.config = payload.assessment.config
            self.language = messages.normalize_language(payload.assessment.language)
        elif payload.organization is not None:
            self.language = messages.normalize_language(payload.organization.language)
        if payload.participant is not None:
            self.participant_id = payload.participant.id

        if payload.status == "completed":
            self.results = payload.results
            if payload.show_results and payload.results is not None:
                self._set_state(SessionState.RESULTS)
            else:
                self._set_state(SessionState.COMPLETED)
            return self.state

        self.questions = list(payload.questions)
        if payload.requires_registration and self.participant_id is None:
            self._set_state(SessionState.REGISTER)
        else:
            self._set_state(SessionState.INTRO)
        return self.state

    def _apply_window_error(self, exc: AccessWindowError) -> None:
        body = exc.payload
        organization = body.get("organization")
        if isinstance(organization, dict):
            self.organization = Branding.model_validate(organization)
        assessment = body.get("assessment")
        if isinstance(assessment, dict):
            self.assessment_title = assessment.get("title")
            self.language = messages.normalize_language(assessment.get("language"))
        self.start_date = body.get("startDate")
        self.end_date = body.get("endDate")
        self._set_state(_WINDOW_STATES.get(exc.status, SessionState.CLOSED))

    async def register(self, form: RegistrationForm) -> bool:
        """Register through a cohort link; stays in ``register`` on any recoverable failure."""
        if self.state is not SessionState.REGISTER:
            return False
        self.duplicate_reason = None
        if not form.full_name.strip() or not form.email.strip() or not form.employee_code.strip():
            self.message = messages.text("register_missing", self.language)
            return False

        try:
            participant_id = await self.api.register(
                self.token,
                full_name=form.full_name,
                email=form.email,
                employee_code=form.employee_code,
                department=form.department,
                job_title=form.job_title,
            )
        except RegistrationConflictError as exc:
            self.duplicate_reason = exc.code
            self.message = messages.duplicate_reason(exc.code, self.language)
            return False
        except AccessWindowError as exc:
            self._apply_window_error(exc)
            return False
        except DeliveryApiError as exc:
            logger.warning("Registration failed: %s", exc)
            self.message = messages.text("register_failed", self.language)
            return False

        self.participant_id = participant_id
        self.message = None
        self._set_state(SessionState.INTRO)
        return True

    # -- answering -----------------------------------------------------

    def start(self) -> None:
        """Enter ``questions``; must be called with a running event loop when a time limit applies."""
        if self.state is not SessionState.INTRO or self.participant_id is None:
            return
        self.current_index = 0
        self.message = None
        self._set_state(SessionState.QUESTIONS)

        minutes = self.config.time_limit_minutes
        if minutes:
            self.countdown = self._countdown_factory(
                int(round(minutes * 60)),
                on_expire=lambda: self.request_submission(SubmitCause.TIMER),
                on_warning=self._on_time_warning,
            )
            self.countdown.start()
        self._install_guards()

    def answer(self, question_id: str, value: AnswerValue) -> None:
        if self.state is not SessionState.QUESTIONS or self.time_expired:
            return
        if not any(question.id == question_id for question in self.questions):
            raise ValueError(f"Unknown question: {question_id}")
        self.answers[question_id] = value
        self.message = None

    def previous(self) -> None:
        if self.state is SessionState.QUESTIONS and self.current_index > 0:
            self.current_index -= 1

    async def next(self) -> None:
        """Advance one question, or submit when leaving the last one.

        Once the time limit has run out, answers are frozen and this retries
        the timed-out submission from whichever question is showing.
        """
        if self.state is not SessionState.QUESTIONS:
            return
        if self.time_expired:
            task = self.request_submission(SubmitCause.TIMER)
            if task is not None:
                await task
            return
        question = self.current_question
        if question is not None and question.id not in self.answers:
            self.message = messages.text("answer_required", self.language)
            return
        if self.current_index < len(self.questions) - 1:
            self.current_index += 1
            return
        task = self.request_submission(SubmitCause.FINISH)
        if task is not None:
            await task

    def _on_time_warning(self, threshold: int) -> None:
        self.warnings.append(messages.time_warning(threshold, self.language))

    # -- page guards ---------------------------------------------------

    def _before_unload(self) -> Optional[str]:
        if self.state is SessionState.QUESTIONS:
            return messages.text("leave_warning", self.language)
        return None

    def _page_hidden(self) -> None:
        self.request_submission(SubmitCause.PAGE_HIDDEN)

    def _install_guards(self) -> None:
        if self._guards_installed:
            return
        self.page.add_listener(BEFORE_UNLOAD, self._before_unload)
        self.page.add_listener(VISIBILITY_HIDDEN, self._page_hidden)
        self._guards_installed = True

    def _remove_guards(self) -> None:
        if not self._guards_installed:
            return
        self.page.remove_listener(BEFORE_UNLOAD, self._before_unload)
        self.page.remove_listener(VISIBILITY_HIDDEN, self._page_hidden)
        self._guards_installed = False

    # -- submission ----------------------------------------------------

    def request_submission(self, cause: SubmitCause) -> Optional["asyncio.Task[None]"]:
        """Start submitting unless a submission is already under way or the session is closed."""
        if self.state is not SessionState.QUESTIONS:
            logger.debug("Ignoring %s submission request in state %s", cause.value, self.state.value)
            return None
        self.submission_cause = cause
        self._set_state(SessionState.SUBMITTING)
        if self.countdown is not None:
            self.countdown.stop()
        self._remove_guards()
        self._submission_task = asyncio.get_running_loop().create_task(self._submit(cause))
        return self._submission_task

    async def wait_for_submission(self) -> None:
        task = self._submission_task
        if task is not None:
            await task

    async def _submit(self, cause: SubmitCause) -> None:
        if self.participant_id is None or self.assessment_id is None:
            self._fail("cannot_submit")
            return
        answers = [
            {"questionId": question.id, "value": self.answers[question.id]}
            for question in self.questions
            if question.id in self.answers
        ]
        logger.info(
            "Submitting %d/%d answers (%s)",
            len(answers),
            len(self.questions),
            cause.value,
        )
        try:
            result = await self.api.submit(
                self.participant_id,
                self.assessment_id,
                answers,
                submission_type=SUBMISSION_TYPES[cause],
            )
        except (ApiTransportError, ApiServerError) as exc:
            logger.warning("Submission failed, returning to questions: %s", exc)
            self._resume_questions()
            return
        except DeliveryApiError as exc:
            logger.warning("Submission rejected: %s", exc)
            self._fail("cannot_submit")
            return

        self.message = None
        self.results = result.results
        if result.show_results and result.results is not None:
            self._set_state(SessionState.RESULTS)
        else:
            self._set_state(SessionState.COMPLETED)

    def _resume_questions(self) -> None:
        self.message = messages.text("submit_failed", self.language)
        self._set_state(SessionState.QUESTIONS)
        if self.countdown is not None and not self.countdown.expired:
            self.countdown.start()
        self._install_guards()

    def close(self) -> None:
        """Release the countdown and page listeners without submitting."""
        if self.countdown is not None:
            self.countdown.stop()
        self._remove_guards()


__all__ = [
    "RegistrationForm",
    "SUBMISSION_TYPES",
    "SessionController",
    "SessionState",
    "SubmitCause",
    "TERMINAL_STATES",
]
