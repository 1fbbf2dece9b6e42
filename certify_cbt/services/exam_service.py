"""
services/exam_service.py

Exam-session helpers: countdown arithmetic, answer payload building,
progress counts, examiner grade checks.
Pure Python functions: no UI code, no network calls, no global state.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from certify_cbt.models.question_model import Question
from certify_cbt.models.user_model import GradeEntry


def compute_remaining_seconds(
    time_remaining_seconds: Optional[float],
    start_time: Optional[datetime],
    duration_minutes: int,
    now: Optional[datetime] = None,
) -> int:
    """
    Initial countdown value for a session.

    The server-provided value wins when present; otherwise the value is
    ``(start_time + duration) - now``. Floored at zero either way.

    Args:
        time_remaining_seconds: Value sent by the service (may be None).
        start_time:             Session start timestamp (naive = UTC).
        duration_minutes:       Exam duration.
        now:                    Clock override, mainly for tests.

    Returns:
        Whole seconds left, >= 0.
    """
    if time_remaining_seconds is not None:
        return max(0, int(time_remaining_seconds))
    if start_time is None:
        return 0

    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    end = start_time + timedelta(minutes=duration_minutes)
    return max(0, int((end - now).total_seconds()))


def is_answered(value: Any) -> bool:
    """Unanswered = missing, None, or blank text."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def build_answer_payload(
    questions: List[Question],
    answers: Mapping[int, Any],
) -> List[Dict[str, Any]]:
    """
    Convert the draft map into the submit-session wire format.

    One entry per answered question, in question order:
      - single choice: ``{"question_id", "selected_option_id"}``
      - free text:     ``{"question_id", "text_answer"}``
    Unanswered questions are omitted, never sent as empty/null.
    """
    payload: List[Dict[str, Any]] = []
    for q in questions:
        value = answers.get(q.id)
        if not is_answered(value):
            continue
        if q.is_choice:
            payload.append({"question_id": q.id, "selected_option_id": _option_id(value)})
        else:
            payload.append({"question_id": q.id, "text_answer": str(value)})
    return payload


def _option_id(value: Any) -> Any:
    # answer shape is checked server-side; only numeric strings are normalised
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def format_time(seconds: int) -> str:
    """Seconds -> ``MM:SS`` (minutes may exceed 59)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def is_warning(seconds: int, threshold: int) -> bool:
    return seconds < threshold


def progress(questions: List[Question], answers: Mapping[int, Any]) -> Dict[str, int]:
    total = len(questions)
    answered = sum(1 for q in questions if is_answered(answers.get(q.id)))
    return {"total": total, "answered": answered, "unanswered": total - answered}


def can_start(exam: Mapping[str, Any]) -> bool:
    """Free exams start right away; priced ones need ``has_paid``."""
    try:
        price = float(exam.get("price") or 0)
    except (TypeError, ValueError):
        price = None
    return price == 0 or bool(exam.get("has_paid"))


def build_grade_payload(
    grades: List[GradeEntry],
    questions: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Check examiner marks against the graded session and build the wire list.

    Args:
        grades:    Marks entered by the examiner.
        questions: Question dicts from the grading-session response
                   (``id`` and ``points`` are used).

    Returns:
        ``[{"question_id", "marks", "comment"}, ...]``

    Raises:
        ValueError: unknown question, duplicate question, or marks above
                    the question's point value.
    """
    max_points = {q.get("id"): q.get("points") for q in questions}
    seen = set()
    payload = []

    for g in grades:
        if g.question_id not in max_points:
            raise ValueError(f"Question {g.question_id} is not part of this session.")
        if g.question_id in seen:
            raise ValueError(f"Question {g.question_id} was graded twice.")
        limit = max_points[g.question_id]
        if limit is not None and g.marks > float(limit):
            raise ValueError(
                f"Marks for question {g.question_id} must be between 0 and {limit}."
            )
        seen.add(g.question_id)
        payload.append({"question_id": g.question_id, "marks": g.marks, "comment": g.comment})
    return payload
