import copy

import pytest

from certify_cbt.errors import SubmissionFailed

SESSION_PAYLOAD = {
    "id": 42,
    "exam": {"id": 7, "title": "Safety Officer Level 1"},
    "duration_minutes": 1,
    "time_remaining_seconds": 5,
    "questions": [
        {
            "id": 1,
            "text": "Which extinguisher is used on electrical fires?",
            "question_type": "mcq",
            "points": 2,
            "options": [
                {"id": 1, "text": "Water"},
                {"id": 2, "text": "CO2"},
                {"id": 3, "text": "Foam"},
            ],
        },
        {
            "id": 2,
            "text": "Name the first step of a risk assessment.",
            "question_type": "theory",
            "points": 5,
        },
        {
            "id": 3,
            "text": "PPE stands for?",
            "question_type": "mcq",
            "points": 1,
            "options": [
                {"id": 10, "option_text": "Personal Protective Equipment"},
                {"id": 11, "option_text": "Public Power Engine"},
            ],
        },
    ],
}


class DummyClient:
    """Stand-in for GradingApiClient used by controller and route tests."""

    def __init__(self, session_payload=None, fail_submits=0, start_error=None):
        self.session_payload = session_payload or copy.deepcopy(SESSION_PAYLOAD)
        self.fail_submits = fail_submits
        self.start_error = start_error
        self.submitted = []

    def start_exam(self, exam_id):
        if self.start_error is not None:
            raise self.start_error
        return copy.deepcopy(self.session_payload)

    def get_session(self, session_id):
        if self.start_error is not None:
            raise self.start_error
        return copy.deepcopy(self.session_payload)

    def submit_session(self, session_id, answers):
        self.submitted.append((session_id, copy.deepcopy(answers)))
        if self.fail_submits > 0:
            self.fail_submits -= 1
            raise SubmissionFailed("Service unavailable", status_code=503)
        return {"session_id": session_id, "status": "submitted"}


@pytest.fixture
def session_payload():
    return copy.deepcopy(SESSION_PAYLOAD)


@pytest.fixture
def client():
    return DummyClient()
