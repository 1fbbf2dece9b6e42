"""
api/routes.py — FastAPI endpoints
"""

import asyncio
import logging
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field

import api.session as session
from api.deps import (
    current_examiner,
    current_user,
    get_api_client,
    get_auth,
    get_controller,
    get_session_state,
)
from certify_cbt.errors import SessionClosed, SubmissionFailed, UnknownQuestion
from certify_cbt.models.question_model import Question
from certify_cbt.models.session_state import SubmissionState
from certify_cbt.models.user_model import GradeEntry, LoginRequest, User
from certify_cbt.services.api_client import Download, GradingApiClient
from certify_cbt.services.auth_state import AuthState
from certify_cbt.services.exam_service import build_grade_payload, can_start
from certify_cbt.services.session_controller import ExamSessionController

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class SaveAnswerBody(BaseModel):
    question_id: int
    answer: Optional[Union[int, str]] = None


class PaymentBody(BaseModel):
    reference: str = Field(..., min_length=1)


class GradesBody(BaseModel):
    grades: List[GradeEntry]


# ── helpers ──────────────────────────────────────────────────────────────────

def _question_to_dict(q: Question) -> dict:
    return {
        "id": q.id,
        "text": q.text,
        "type": q.type.value,
        "options": [{"id": o.id, "text": o.text} for o in q.options],
        "points": q.points,
        "image": q.image,
    }


def _attachment(download: Download) -> Response:
    return Response(
        content=download.content,
        media_type=download.content_type,
        headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
    )


async def _open_exam(
    state: dict[str, Any],
    client: GradingApiClient,
    auth: AuthState,
    loader: str,
    ref: int,
) -> dict:
    old: Optional[ExamSessionController] = state.get("controller")
    if old is not None:
        old.close()
        state["controller"] = None

    controller = ExamSessionController(client, on_unauthorized=auth.teardown)
    await getattr(controller, loader)(ref)
    state["controller"] = controller
    controller.start_countdown()
    return {"ok": True, **controller.snapshot()}


# ── auth ─────────────────────────────────────────────────────────────────────

@router.post("/api/login")
async def login(
    body: LoginRequest,
    auth: AuthState = Depends(get_auth),
    client: GradingApiClient = Depends(get_api_client),
):
    tokens = await asyncio.to_thread(client.login, body.email, body.password)
    auth.init(tokens)
    return {"ok": True, "user": tokens.user.model_dump(mode="json")}


@router.post("/api/logout")
async def logout(request: Request):
    session.reset(request.state.session_id)
    return {"ok": True, "redirect": "/login"}


@router.get("/api/me")
async def me(user: User = Depends(current_user)):
    return user.model_dump(mode="json")


# ── exam catalogue ───────────────────────────────────────────────────────────

@router.get("/api/exams")
async def list_exams(
    _: User = Depends(current_user),
    client: GradingApiClient = Depends(get_api_client),
):
    return await asyncio.to_thread(client.list_exams)


# ── exam session ─────────────────────────────────────────────────────────────

@router.post("/api/exams/{exam_id}/verify-payment")
async def verify_payment(
    exam_id: int,
    body: PaymentBody,
    _: User = Depends(current_user),
    state: dict = Depends(get_session_state),
    client: GradingApiClient = Depends(get_api_client),
):
    reference = body.reference.strip()
    if not reference:
        raise HTTPException(status_code=400, detail="Payment reference is required.")
    result = await asyncio.to_thread(client.verify_payment, reference, exam_id)
    state["paid_exams"].add(exam_id)
    logger.info(f"Payment verified for exam {exam_id}")
    return {"ok": True, "exam_id": exam_id, "result": result}


@router.post("/api/exams/{exam_id}/start")
async def start_exam(
    exam_id: int,
    _: User = Depends(current_user),
    state: dict = Depends(get_session_state),
    auth: AuthState = Depends(get_auth),
    client: GradingApiClient = Depends(get_api_client),
):
    exams = await asyncio.to_thread(client.list_exams)
    exam = next((e for e in exams or [] if e.get("id") == exam_id), None)
    if exam is None:
        raise HTTPException(status_code=404, detail="Exam not found.")
    if not can_start(exam) and exam_id not in state["paid_exams"]:
        raise HTTPException(status_code=402, detail="Payment is required before starting this exam.")
    return await _open_exam(state, client, auth, "start", exam_id)


@router.post("/api/sessions/{session_id}/resume")
async def resume_exam(
    session_id: int,
    _: User = Depends(current_user),
    state: dict = Depends(get_session_state),
    auth: AuthState = Depends(get_auth),
    client: GradingApiClient = Depends(get_api_client),
):
    current: Optional[ExamSessionController] = state.get("controller")
    if current is not None and current.session is not None and current.session.id == session_id \
            and current.state != SubmissionState.SUBMITTED:
        return {"ok": True, **current.snapshot()}
    return await _open_exam(state, client, auth, "resume", session_id)


@router.get("/api/question/{index}")
async def get_question(index: int, controller: ExamSessionController = Depends(get_controller)):
    questions = controller.session.questions if controller.session else []
    if not questions or not (0 <= index < len(questions)):
        raise HTTPException(status_code=404, detail="Question not found.")

    q = questions[index]
    d = _question_to_dict(q)
    d.update({
        "saved_answer": controller.draft().get(q.id),
        "index": index,
        "total": len(questions),
    })
    return d


@router.get("/api/exam-state")
async def get_exam_state(controller: ExamSessionController = Depends(get_controller)):
    return controller.snapshot()


@router.post("/api/save-answer")
async def save_answer(body: SaveAnswerBody, controller: ExamSessionController = Depends(get_controller)):
    try:
        controller.record_answer(body.question_id, body.answer)
    except UnknownQuestion as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"ok": True, "answered_count": len(controller.draft())}


@router.post("/api/submit-exam")
async def submit_exam(controller: ExamSessionController = Depends(get_controller)):
    try:
        await controller.submit(manual=True)
    except SubmissionFailed as e:
        raise HTTPException(
            status_code=502,
            detail=f"Submission failed: {e}. Your answers are kept; please retry.",
        )

    if controller.state == SubmissionState.SUBMITTED:
        snapshot = controller.snapshot()
        return {
            "ok": True,
            "result": snapshot["result"],
            "redirect": f"/results/{snapshot['session_id']}",
        }
    raise HTTPException(status_code=409, detail="Submission already in progress.")


@router.post("/api/exam/leave")
async def leave_exam(state: dict = Depends(get_session_state)):
    controller: Optional[ExamSessionController] = state.get("controller")
    if controller is not None:
        controller.close()
        state["controller"] = None
    return {"ok": True}


# ── results & certificates ───────────────────────────────────────────────────

@router.get("/api/results/{session_id}")
async def get_results(
    session_id: int,
    _: User = Depends(current_user),
    client: GradingApiClient = Depends(get_api_client),
):
    return await asyncio.to_thread(client.get_result, session_id)


@router.get("/api/results/{session_id}/download")
async def download_result(
    session_id: int,
    _: User = Depends(current_user),
    client: GradingApiClient = Depends(get_api_client),
):
    return _attachment(await asyncio.to_thread(client.download_result, session_id))


@router.get("/api/history")
async def exam_history(
    _: User = Depends(current_user),
    client: GradingApiClient = Depends(get_api_client),
):
    return await asyncio.to_thread(client.exam_history)


@router.get("/api/certificates")
async def list_certificates(
    _: User = Depends(current_user),
    client: GradingApiClient = Depends(get_api_client),
):
    return await asyncio.to_thread(client.list_certificates)


@router.get("/api/certificates/{certificate_id}/download")
async def download_certificate(
    certificate_id: str,
    _: User = Depends(current_user),
    client: GradingApiClient = Depends(get_api_client),
):
    return _attachment(await asyncio.to_thread(client.download_certificate, certificate_id))


@router.get("/api/verify/{code}")
async def verify_certificate(code: str, client: GradingApiClient = Depends(get_api_client)):
    code = code.strip()
    if not code:
        raise HTTPException(status_code=400, detail="Certificate ID is required.")
    return await asyncio.to_thread(client.verify_certificate, code)


# ── examiner grading ─────────────────────────────────────────────────────────

@router.get("/api/grading/pending")
async def pending_grading(
    _: User = Depends(current_examiner),
    client: GradingApiClient = Depends(get_api_client),
):
    return await asyncio.to_thread(client.pending_grading)


@router.get("/api/grading/{session_id}")
async def grading_session(
    session_id: int,
    _: User = Depends(current_examiner),
    client: GradingApiClient = Depends(get_api_client),
):
    return await asyncio.to_thread(client.grading_session, session_id)


@router.post("/api/grading/{session_id}")
async def submit_grades(
    session_id: int,
    body: GradesBody,
    _: User = Depends(current_examiner),
    client: GradingApiClient = Depends(get_api_client),
):
    if not body.grades:
        raise HTTPException(status_code=400, detail="No grades entered.")
    graded = await asyncio.to_thread(client.grading_session, session_id)
    try:
        payload = build_grade_payload(body.grades, graded.get("questions") or [])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await asyncio.to_thread(client.submit_grades, session_id, payload)
    logger.info(f"Grades submitted for session {session_id} ({len(payload)} questions)")
    return {"ok": True, "result": result}
