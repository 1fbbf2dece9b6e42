"""
services/session_controller.py

Timed exam session controller.

State machine:
    not_started -> in_progress -> submitting -> submitted
                   in_progress <- submitting        (failed attempt)

All methods run on one asyncio event loop. The submit guard
(in_progress -> submitting) is checked and set before the first await,
so a manual submit and the timeout auto-submit can never both reach the
network for the same attempt.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from config import AUTO_SUBMIT_RETRIES, BACKOFF_BASE, TICK_SECONDS, TIME_WARNING_SECONDS
from certify_cbt.errors import (
    SessionClosed,
    SessionUnavailable,
    SubmissionFailed,
    Unauthorized,
    UnknownQuestion,
)
from certify_cbt.models.session_state import AnswerValue, ExamSession, SubmissionState
from certify_cbt.services.countdown import Countdown
from certify_cbt.services.exam_service import (
    build_answer_payload,
    compute_remaining_seconds,
    format_time,
    is_answered,
    is_warning,
    progress,
)

logger = logging.getLogger(__name__)

_CLOSED_STATUSES = ("submitted", "completed", "graded", "finished")


class ExamSessionController:
    def __init__(
        self,
        client,
        interval: float = TICK_SECONDS,
        max_auto_attempts: int = AUTO_SUBMIT_RETRIES,
        backoff_base: float = BACKOFF_BASE,
        on_unauthorized: Optional[Callable[[], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.max_auto_attempts = max_auto_attempts
        self.backoff_base = backoff_base
        self.on_unauthorized = on_unauthorized
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._countdown = Countdown(self._on_tick, interval)

        self.session: Optional[ExamSession] = None
        self.submit_attempts = 0
        self.last_payload: Optional[list] = None
        self.auto_submit_exhausted = False

    # ── lifecycle ─────────────────────────────────────────────────────────

    @property
    def state(self) -> SubmissionState:
        return self.session.state if self.session else SubmissionState.NOT_STARTED

    async def start(self, exam_id: int) -> ExamSession:
        """Ask the service for a new (or resumed) session of `exam_id`."""
        data = await asyncio.to_thread(self.client.start_exam, exam_id)
        session = self._load(data)
        logger.info(
            f"Exam {exam_id} started: session {session.id}, "
            f"{len(session.questions)} questions, {session.remaining_seconds}s left"
        )
        return session

    async def resume(self, session_id: int) -> ExamSession:
        """Reload a live session snapshot (page reload, new tab)."""
        data = await asyncio.to_thread(self.client.get_session, session_id)
        session = self._load(data)
        logger.info(f"Session {session.id} resumed with {session.remaining_seconds}s left")
        return session

    def _load(self, data: Dict[str, Any]) -> ExamSession:
        if not isinstance(data, dict):
            raise SessionUnavailable("Exam service returned no session.")
        if str(data.get("status", "")).lower() in _CLOSED_STATUSES:
            raise SessionUnavailable("This exam session has already been submitted.")
        try:
            session = ExamSession.from_wire(data)
        except ValidationError as e:
            logger.error(f"Malformed session payload: {e}")
            raise SessionUnavailable("Exam service returned a malformed session.") from e

        session.remaining_seconds = compute_remaining_seconds(
            data.get("time_remaining_seconds"),
            session.start_time,
            session.duration_minutes,
            now=self._clock(),
        )
        session.state = SubmissionState.IN_PROGRESS

        self.close()
        self.session = session
        self.submit_attempts = 0
        self.last_payload = None
        self.auto_submit_exhausted = False
        return session

    def start_countdown(self) -> None:
        """Begin the one-second countdown on the running event loop."""
        if self.state == SubmissionState.IN_PROGRESS:
            self._countdown.start()

    def close(self) -> None:
        """Teardown: stop the countdown. Nothing is submitted afterwards."""
        self._countdown.cancel()

    @property
    def countdown_running(self) -> bool:
        return self._countdown.running

    # ── answers ───────────────────────────────────────────────────────────

    def record_answer(self, question_id: int, value: Optional[AnswerValue]) -> None:
        """
        Store or overwrite the draft answer for a question (last write wins).
        An empty value clears the answer.

        Raises:
            SessionClosed:   no live session, submission in flight or done,
                             or time is up.
            UnknownQuestion: question id not in this session.
        """
        s = self.session
        if s is None or s.state == SubmissionState.NOT_STARTED:
            raise SessionClosed("No exam in progress.")
        if s.state == SubmissionState.SUBMITTING:
            raise SessionClosed("Submission in progress. Answers can no longer be changed.")
        if s.state == SubmissionState.SUBMITTED:
            raise SessionClosed("This exam has already been submitted.")
        if s.expired:
            raise SessionClosed("Time is up. Answers can no longer be changed.")
        if s.question(question_id) is None:
            raise UnknownQuestion(f"Question {question_id} is not part of this exam.")

        if is_answered(value):
            s.answers[question_id] = value
        else:
            s.answers.pop(question_id, None)

    def draft(self) -> Dict[int, AnswerValue]:
        return dict(self.session.answers) if self.session else {}

    # ── countdown ─────────────────────────────────────────────────────────

    async def tick(self) -> None:
        """
        Advance the clock by one second.

        At zero the session is marked expired and, unless a submission is
        already in flight, submitted automatically with the current draft.
        """
        s = self.session
        if s is None or s.state not in (SubmissionState.IN_PROGRESS, SubmissionState.SUBMITTING):
            return

        if s.remaining_seconds > 0:
            s.remaining_seconds -= 1
        if s.remaining_seconds > 0:
            return

        if not s.expired:
            s.expired = True
            logger.info(f"Session {s.id}: time is up")
        # an in-flight manual submit carries the answers; if it fails the next tick retries
        if s.state == SubmissionState.IN_PROGRESS and not self.auto_submit_exhausted:
            await self._auto_submit()

    async def _on_tick(self) -> bool:
        await self.tick()
        s = self.session
        return (
            s is not None
            and s.state != SubmissionState.SUBMITTED
            and not self.auto_submit_exhausted
        )

    # ── submission ────────────────────────────────────────────────────────

    async def submit(self, manual: bool = True) -> bool:
        """
        Submit the draft to the grading service.

        Returns:
            True  — this call submitted the session.
            False — nothing sent: another submission is in flight or the
                    session is already submitted.

        Raises:
            SubmissionFailed: manual attempt rejected; state is back to
                              in_progress and the draft is intact.
            Unauthorized:     credentials rejected.
        """
        if manual:
            return await self._attempt(manual=True)
        return await self._auto_submit()

    async def _attempt(self, manual: bool) -> bool:
        s = self.session
        if s is None:
            raise SessionClosed("No exam in progress.")
        if s.state != SubmissionState.IN_PROGRESS:
            logger.warning(
                f"Session {s.id}: {'manual' if manual else 'auto'} submit skipped ({s.state.value})"
            )
            return False

        # guard: set before any await
        s.state = SubmissionState.SUBMITTING
        payload = build_answer_payload(s.questions, s.answers)
        self.submit_attempts += 1
        self.last_payload = payload
        logger.info(
            f"Session {s.id}: {'manual' if manual else 'auto'} submit "
            f"#{self.submit_attempts} with {len(payload)}/{len(s.questions)} answers"
        )

        try:
            result = await asyncio.to_thread(self.client.submit_session, s.id, payload)
        except Unauthorized:
            s.state = SubmissionState.IN_PROGRESS
            s.last_error = "Session expired. Please sign in again."
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            raise
        except SubmissionFailed as e:
            s.state = SubmissionState.IN_PROGRESS
            s.last_error = str(e)
            logger.error(f"Session {s.id}: submit failed: {e}")
            raise

        s.state = SubmissionState.SUBMITTED
        s.result = result or {}
        s.last_error = None
        self._countdown.cancel()
        logger.info(f"Session {s.id}: submitted")
        return True

    async def _auto_submit(self) -> bool:
        """Timeout submission with bounded exponential-backoff retries."""
        s = self.session
        for attempt in range(1, self.max_auto_attempts + 1):
            try:
                return await self._attempt(manual=False)
            except Unauthorized:
                self.auto_submit_exhausted = True
                return False
            except SubmissionFailed as e:
                if attempt < self.max_auto_attempts:
                    wait = self.backoff_base * (2 ** (attempt - 1))
                    logger.warning(
                        f"Auto-submit failed, retrying in {wait:.1f}s ({attempt}/{self.max_auto_attempts})"
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error(f"Auto-submit gave up after {attempt} attempts: {e}")
                    self.auto_submit_exhausted = True
                    s.last_error = (
                        f"Time is up and your answers could not be submitted ({e}). "
                        "Please retry the submission."
                    )
        return False

    # ── view ──────────────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        s = self.session
        if s is None:
            return {"state": SubmissionState.NOT_STARTED.value}
        return {
            "session_id": s.id,
            "exam_id": s.exam_id,
            "exam_title": s.exam_title,
            "state": s.state.value,
            "remaining_seconds": s.remaining_seconds,
            "time_display": format_time(s.remaining_seconds),
            "time_warning": is_warning(s.remaining_seconds, TIME_WARNING_SECONDS),
            "expired": s.expired,
            "answers": {str(k): v for k, v in s.answers.items()},
            **progress(s.questions, s.answers),
            "question_ids": [q.id for q in s.questions],
            "last_error": s.last_error,
            "result": s.result,
        }
