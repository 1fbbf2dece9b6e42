"""
models/session_state.py

Answer-sheet model for one candidate attempt at one exam.
Pydantic BaseModel based: serialization plus type safety.
No UI code, no network code.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from certify_cbt.models.question_model import Question

# selected option id (single choice) or free text
AnswerValue = Union[int, str]


class SubmissionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class ExamSession(BaseModel):
    """
    State of one exam session, owned by the session controller.

    Attributes:
        id:                Session id issued by the remote service.
        exam_id:           Exam the session belongs to.
        exam_title:        Display title, if the service sent one.
        questions:         Ordered question list.
        start_time:        Server-side start timestamp.
        duration_minutes:  Exam duration.
        remaining_seconds: Countdown value, never negative.
        state:             Submission state machine position.
        answers:           Draft answers. {question.id: option id or text}
        expired:           True once the countdown hit zero.
        last_error:        Message of the last failed submit attempt.
        result:            Response body of the successful submit.
    """

    id: int = Field(..., description="Session id")
    exam_id: Optional[int] = Field(None, description="Exam reference")
    exam_title: str = ""
    questions: List[Question] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    duration_minutes: int = Field(0, ge=0)
    remaining_seconds: int = Field(0, ge=0)
    state: SubmissionState = SubmissionState.NOT_STARTED
    answers: Dict[int, AnswerValue] = Field(default_factory=dict)
    expired: bool = False
    last_error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "ExamSession":
        """Build a session from a start-session / get-session response."""
        exam = data.get("exam")
        exam_id = data.get("exam_id")
        exam_title = data.get("exam_title") or ""
        if isinstance(exam, dict):
            exam_id = exam_id or exam.get("id")
            exam_title = exam_title or exam.get("title", "")
        elif isinstance(exam, int):
            exam_id = exam_id or exam
        return cls(
            id=data.get("id") or data.get("session_id"),
            exam_id=exam_id,
            exam_title=exam_title,
            questions=data.get("questions") or [],
            start_time=data.get("start_time"),
            duration_minutes=data.get("duration_minutes") or data.get("duration") or 0,
        )

    def question(self, question_id: int) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None
