import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import DummyClient
from certify_cbt.errors import (
    SessionClosed,
    SessionUnavailable,
    SubmissionFailed,
    Unauthorized,
    UnknownQuestion,
)
from certify_cbt.models.session_state import SubmissionState
from certify_cbt.services.session_controller import ExamSessionController


def _controller(client, **kwargs):
    kwargs.setdefault("backoff_base", 0)
    return ExamSessionController(client, **kwargs)


def _started(client, **kwargs):
    controller = _controller(client, **kwargs)
    asyncio.run(controller.start(7))
    return controller


def test_start_uses_server_remaining(client):
    controller = _started(client)
    assert controller.state == SubmissionState.IN_PROGRESS
    assert controller.session.remaining_seconds == 5
    assert controller.session.id == 42


def test_start_computes_remaining_without_server_value(session_payload):
    now = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    del session_payload["time_remaining_seconds"]
    session_payload["start_time"] = (now - timedelta(seconds=20)).isoformat()
    controller = _started(DummyClient(session_payload), clock=lambda: now)
    assert controller.session.remaining_seconds == 40


def test_start_rejected_by_service():
    client = DummyClient(start_error=SessionUnavailable("Exam is not active", status_code=400))
    controller = _controller(client)
    with pytest.raises(SessionUnavailable):
        asyncio.run(controller.start(7))
    assert controller.state == SubmissionState.NOT_STARTED


def test_resume_of_submitted_session_is_rejected(session_payload):
    session_payload["status"] = "submitted"
    controller = _controller(DummyClient(session_payload))
    with pytest.raises(SessionUnavailable):
        asyncio.run(controller.resume(42))


def test_irregular_questions_still_start(session_payload):
    questions = session_payload["questions"]
    questions[0]["options"] = []
    questions[1]["question_type"] = "short_answer"
    questions[2]["options_data"] = questions[2].pop("options")
    controller = _started(DummyClient(session_payload))

    assert controller.state == SubmissionState.IN_PROGRESS
    first, second, third = controller.session.questions
    assert first.is_choice and first.options == []
    assert not second.is_choice
    assert [o.id for o in third.options] == [10, 11]

    controller.record_answer(2, "Stop work")
    controller.record_answer(3, 10)
    asyncio.run(controller.submit(manual=True))
    assert controller.client.submitted == [(42, [
        {"question_id": 2, "text_answer": "Stop work"},
        {"question_id": 3, "selected_option_id": 10},
    ])]


def test_malformed_session_is_unavailable(session_payload):
    del session_payload["questions"][0]["id"]
    controller = _controller(DummyClient(session_payload))
    with pytest.raises(SessionUnavailable):
        asyncio.run(controller.start(7))


def test_record_answer_last_write_wins(client):
    controller = _started(client)
    controller.record_answer(1, 2)
    assert controller.draft()[1] == 2
    controller.record_answer(1, 3)
    assert controller.draft() == {1: 3}


def test_blank_answer_clears_draft(client):
    controller = _started(client)
    controller.record_answer(2, "Identify hazards")
    controller.record_answer(2, "  ")
    assert 2 not in controller.draft()


def test_unknown_question_is_rejected(client):
    controller = _started(client)
    with pytest.raises(UnknownQuestion):
        controller.record_answer(99, 1)
    assert controller.draft() == {}


def test_record_answer_before_start_is_rejected(client):
    with pytest.raises(SessionClosed):
        _controller(client).record_answer(1, 2)


def test_auto_submit_after_remaining_runs_out(client):
    controller = _started(client)
    controller.record_answer(1, 2)

    seen = []

    async def run():
        for _ in range(4):
            await controller.tick()
            seen.append(controller.session.remaining_seconds)
        assert client.submitted == []
        controller.record_answer(2, "Identify hazards")
        await controller.tick()
        seen.append(controller.session.remaining_seconds)

    asyncio.run(run())

    assert seen == [4, 3, 2, 1, 0]
    assert controller.state == SubmissionState.SUBMITTED
    assert client.submitted == [
        (42, [
            {"question_id": 1, "selected_option_id": 2},
            {"question_id": 2, "text_answer": "Identify hazards"},
        ])
    ]


def test_changed_answer_submits_latest_option(client):
    controller = _started(client)
    controller.record_answer(1, 2)
    controller.record_answer(1, 3)
    assert asyncio.run(controller.submit(manual=True)) is True
    assert client.submitted == [(42, [{"question_id": 1, "selected_option_id": 3}])]


def test_partial_answers_omit_unanswered(client):
    controller = _started(client)
    controller.record_answer(3, 11)
    asyncio.run(controller.submit(manual=True))
    _, payload = client.submitted[0]
    assert [a["question_id"] for a in payload] == [3]


def test_manual_submit_then_expiry_sends_once(client):
    controller = _started(client)
    controller.session.remaining_seconds = 1

    async def run():
        manual = asyncio.create_task(controller.submit(manual=True))
        await asyncio.sleep(0)
        assert controller.state == SubmissionState.SUBMITTING
        await controller.tick()
        return await manual

    assert asyncio.run(run()) is True
    assert controller.session.expired
    assert controller.state == SubmissionState.SUBMITTED
    assert len(client.submitted) == 1


def test_expiry_then_manual_submit_sends_once(client):
    controller = _started(client)
    controller.session.remaining_seconds = 1

    async def run():
        auto = asyncio.create_task(controller.tick())
        await asyncio.sleep(0)
        manual_result = await controller.submit(manual=True)
        await auto
        return manual_result

    assert asyncio.run(run()) is False
    assert controller.state == SubmissionState.SUBMITTED
    assert len(client.submitted) == 1


def test_answers_are_locked_while_submitting(client):
    controller = _started(client)
    controller.record_answer(1, 2)

    async def run():
        manual = asyncio.create_task(controller.submit(manual=True))
        await asyncio.sleep(0)
        assert controller.state == SubmissionState.SUBMITTING
        with pytest.raises(SessionClosed, match="Submission in progress"):
            controller.record_answer(1, 3)
        return await manual

    assert asyncio.run(run()) is True
    assert controller.draft() == {1: 2}
    assert client.submitted == [(42, [{"question_id": 1, "selected_option_id": 2}])]


def test_submitted_session_is_frozen(client):
    controller = _started(client)
    controller.record_answer(1, 2)
    asyncio.run(controller.submit(manual=True))
    sent = client.submitted[0]

    with pytest.raises(SessionClosed):
        controller.record_answer(1, 3)
    remaining = controller.session.remaining_seconds
    asyncio.run(controller.tick())
    assert asyncio.run(controller.submit(manual=True)) is False

    assert controller.session.remaining_seconds == remaining
    assert controller.draft() == {1: 2}
    assert client.submitted == [sent]


def test_manual_submit_fails_once_then_succeeds():
    client = DummyClient(fail_submits=1)
    controller = _started(client)
    controller.record_answer(1, 2)

    with pytest.raises(SubmissionFailed):
        asyncio.run(controller.submit(manual=True))
    assert controller.state == SubmissionState.IN_PROGRESS
    assert controller.draft() == {1: 2}
    assert controller.session.last_error == "Service unavailable"

    assert asyncio.run(controller.submit(manual=True)) is True
    assert controller.state == SubmissionState.SUBMITTED
    assert controller.session.last_error is None
    assert controller.submit_attempts == 2
    assert len(client.submitted) == 2


def test_auto_submit_retries_after_failure():
    client = DummyClient(fail_submits=1)
    controller = _started(client)
    controller.session.remaining_seconds = 1

    asyncio.run(controller.tick())

    assert controller.state == SubmissionState.SUBMITTED
    assert len(client.submitted) == 2


def test_auto_submit_gives_up_and_surfaces_error():
    client = DummyClient(fail_submits=10)
    controller = _started(client, max_auto_attempts=3)
    controller.record_answer(1, 2)
    controller.session.remaining_seconds = 1

    asyncio.run(controller.tick())

    assert len(client.submitted) == 3
    assert controller.auto_submit_exhausted
    snapshot = controller.snapshot()
    assert snapshot["state"] == "in_progress"
    assert snapshot["expired"] is True
    assert "Time is up" in snapshot["last_error"]
    assert snapshot["answers"] == {"1": 2}

    # the clock does not keep firing submissions
    asyncio.run(controller.tick())
    assert len(client.submitted) == 3

    # time is up: the draft is read-only, but a manual retry still goes out
    with pytest.raises(SessionClosed):
        controller.record_answer(1, 3)
    client.fail_submits = 0
    assert asyncio.run(controller.submit(manual=True)) is True
    assert controller.state == SubmissionState.SUBMITTED
    assert client.submitted[-1] == (42, [{"question_id": 1, "selected_option_id": 2}])


def test_unauthorized_submit_notifies_owner(client):
    calls = []

    def reject(session_id, answers):
        raise Unauthorized()

    client.submit_session = reject
    controller = _started(client, on_unauthorized=lambda: calls.append(True))

    with pytest.raises(Unauthorized):
        asyncio.run(controller.submit(manual=True))
    assert calls == [True]
    assert controller.state == SubmissionState.IN_PROGRESS


def test_countdown_task_auto_submits(client):
    controller = _controller(client, interval=0.01)

    async def run():
        await controller.start(7)
        controller.start_countdown()
        assert controller.countdown_running
        for _ in range(200):
            if controller.state == SubmissionState.SUBMITTED:
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)

    asyncio.run(run())
    assert controller.state == SubmissionState.SUBMITTED
    assert controller.session.remaining_seconds == 0
    assert not controller.countdown_running
    assert len(client.submitted) == 1


def test_close_stops_the_countdown(session_payload):
    session_payload["time_remaining_seconds"] = 600
    controller = _controller(DummyClient(session_payload), interval=0.01)

    async def run():
        await controller.start(7)
        controller.start_countdown()
        await asyncio.sleep(0.05)
        controller.close()
        frozen = controller.session.remaining_seconds
        await asyncio.sleep(0.05)
        return frozen

    frozen = asyncio.run(run())
    assert frozen < 600
    assert controller.session.remaining_seconds == frozen
    assert not controller.countdown_running


def test_snapshot(client):
    controller = _started(client)
    controller.record_answer(1, 2)
    snapshot = controller.snapshot()
    assert snapshot["session_id"] == 42
    assert snapshot["time_display"] == "00:05"
    assert snapshot["time_warning"] is True
    assert snapshot["answered"] == 1
    assert snapshot["total"] == 3
    assert snapshot["question_ids"] == [1, 2, 3]
