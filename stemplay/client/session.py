"""
Attempt session controller

Drives one student's run through a quiz:

    LOADING -> ACTIVE(q) -> SUBMITTING -> COMPLETED
    LOADING -> BLOCKED                      (quota denied)
    any     -> ERRORED                      (fetch / submission failure)
    any     -> CLOSED                       (teardown)

The countdown timer is owned by the session. It is started on entering
ACTIVE(q) and cancelled on every way out of it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from stemplay.client.timer import CountdownTimer
from stemplay.errors import QuotaExceededError, StemPlayError, TransientNetworkError, ValidationError
from stemplay.scoring import NO_ANSWER, AttemptResult, ScoredAnswer, normalize_selection

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ERRORED = "errored"
    BLOCKED = "blocked"
    CLOSED = "closed"


@dataclass(frozen=True)
class AnswerRecord:
    question_index: int
    selected_index: Optional[int]  # None = no answer (skipped or timed out)
    time_taken_sec: int

    def to_wire(self) -> dict:
        return {
            "question_index": self.question_index,
            "selected_index": NO_ANSWER if self.selected_index is None else self.selected_index,
            "time_taken_sec": self.time_taken_sec,
        }


def result_from_response(data: dict) -> AttemptResult:
    return AttemptResult(
        correct_count=data["correct_count"],
        total_points=data["total_points"],
        answers=[ScoredAnswer(**a) for a in data.get("answers", [])],
    )


class AttemptSession:
    def __init__(
        self,
        api,
        quiz_id: str,
        timer: Optional[CountdownTimer] = None,
        on_change: Optional[Callable[["AttemptSession"], None]] = None,
    ):
        self.api = api
        self.quiz_id = quiz_id
        self.timer = timer or CountdownTimer()
        self.on_change = on_change

        self.state = SessionState.LOADING
        self.quiz: Optional[dict] = None
        self.question_index = 0
        self.remaining = 0
        self.answers: list[AnswerRecord] = []
        self.started_at: Optional[datetime] = None
        self.result: Optional[AttemptResult] = None
        self.error: Optional[StemPlayError] = None
        self.submission_count = 0

    # --- properties ---

    @property
    def per_question_seconds(self) -> int:
        return self.quiz["per_question_seconds"] if self.quiz else 0

    @property
    def question_count(self) -> int:
        return len(self.quiz["questions"]) if self.quiz else 0

    @property
    def current_question(self) -> Optional[dict]:
        if self.state != SessionState.ACTIVE:
            return None
        return self.quiz["questions"][self.question_index]

    # --- transitions ---

    async def load(self) -> SessionState:
        """Fetch the quiz and enter the first question, or block / error."""
        if self.state != SessionState.LOADING:
            return self.state
        try:
            quiz = await self.api.fetch_quiz(self.quiz_id)
        except QuotaExceededError as e:
            self.error = e
            return self._set_state(SessionState.BLOCKED)
        except StemPlayError as e:
            return self._fail(e)

        if self.state != SessionState.LOADING:
            # closed while the fetch was in flight
            return self.state
        if quiz["attempts_used"] >= quiz["max_attempts_per_student"]:
            self.error = QuotaExceededError("No attempts left for this quiz")
            return self._set_state(SessionState.BLOCKED)
        if not quiz.get("questions") or quiz.get("per_question_seconds", 0) <= 0:
            return self._fail(ValidationError("Quiz has no playable questions"))

        self.quiz = quiz
        self.started_at = datetime.now(timezone.utc)
        self._enter_question(0)
        return self.state

    async def record_answer(self, selected_index: Optional[int] = None) -> SessionState:
        """
        Record the answer for the current question (None = no answer) and
        move on. On the last question this issues the single submission.
        Outside ACTIVE it does nothing.
        """
        if self.state != SessionState.ACTIVE:
            logger.debug(f"record_answer ignored in state {self.state.value}")
            return self.state

        remaining = self.remaining
        self.timer.cancel()

        question = self.quiz["questions"][self.question_index]
        selected = normalize_selection(selected_index, len(question["options"]))
        self.answers.append(AnswerRecord(
            question_index=self.question_index,
            selected_index=None if selected == NO_ANSWER else selected,
            time_taken_sec=max(0, self.per_question_seconds - remaining),
        ))

        if self.question_index + 1 < self.question_count:
            self._enter_question(self.question_index + 1)
            return self.state

        self._set_state(SessionState.SUBMITTING)
        await self._submit()
        return self.state

    async def retry_submission(self) -> SessionState:
        """Manual resubmission after a network failure; answers are kept."""
        if self.state != SessionState.ERRORED or not isinstance(self.error, TransientNetworkError):
            return self.state
        if len(self.answers) != self.question_count:
            return self.state
        self.error = None
        self._set_state(SessionState.SUBMITTING)
        await self._submit()
        return self.state

    def close(self) -> None:
        """Teardown: stop the timer and discard the session."""
        self.timer.cancel()
        if self.state != SessionState.CLOSED:
            self._set_state(SessionState.CLOSED)

    # --- internals ---

    def _enter_question(self, index: int) -> None:
        self.question_index = index
        self.remaining = self.per_question_seconds
        self._set_state(SessionState.ACTIVE)
        self.timer.start(self.per_question_seconds, self._on_tick, self._on_expire)

    def _on_tick(self, remaining: int) -> None:
        if self.state == SessionState.ACTIVE:
            self.remaining = remaining
            self._notify()

    async def _on_expire(self) -> None:
        if self.state == SessionState.ACTIVE:
            self.remaining = 0
            await self.record_answer(None)

    async def _submit(self) -> None:
        self.submission_count += 1
        payload = [a.to_wire() for a in self.answers]
        try:
            data = await self.api.submit_attempt(self.quiz_id, payload)
            result = result_from_response(data)
        except StemPlayError as e:
            if self.state == SessionState.SUBMITTING:
                self._fail(e)
            return
        except Exception as e:
            # may be running inside the timer task, which nobody awaits
            logger.exception(f"Unexpected submission failure on quiz {self.quiz_id}")
            if self.state == SessionState.SUBMITTING:
                self._fail(StemPlayError(f"Submission failed: {e}"))
            return

        if self.state != SessionState.SUBMITTING:
            return
        self.result = result
        self._set_state(SessionState.COMPLETED)

    def _fail(self, error: StemPlayError) -> SessionState:
        self.timer.cancel()
        self.error = error
        logger.warning(f"Attempt on quiz {self.quiz_id} failed: {error.message}")
        return self._set_state(SessionState.ERRORED)

    def _set_state(self, state: SessionState) -> SessionState:
        self.state = state
        self._notify()
        return state

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self)

