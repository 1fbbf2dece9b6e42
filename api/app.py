"""
api/app.py — FastAPI app instance + session middleware + error handlers + static serving
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from config import API_BASE_URL, CLEANUP_INTERVAL, STATIC_DIR
from api.routes import router
import api.session as session
from certify_cbt.errors import ApiError, SessionUnavailable, SubmissionFailed, Unauthorized

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


async def _cleanup_loop() -> None:
    # expire idle browser sessions (and their exam countdowns)
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL)
        removed = session.cleanup_expired()
        if removed:
            logger.info(f"Cleaned up {removed} expired sessions")


@asynccontextmanager
async def lifespan(app: FastAPI):
    cleanup = asyncio.create_task(_cleanup_loop())
    yield
    cleanup.cancel()
    session.clear_all()


def create_app(api_base_url: Optional[str] = None) -> FastAPI:
    session.configure_client(base_url=api_base_url or API_BASE_URL)
    app = FastAPI(title="Certification Exam Client", docs_url=None, redoc_url=None, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # session middleware: read the session id from the cookie, issue one if missing
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    # 401 from the exam service: drop credentials and stop any running exam
    @app.exception_handler(Unauthorized)
    async def unauthorized_handler(request: Request, exc: Unauthorized):
        sid = getattr(request.state, "session_id", None)
        if sid:
            session.reset(sid)
        return JSONResponse(status_code=401, content={"detail": str(exc), "redirect": "/login"})

    @app.exception_handler(SessionUnavailable)
    async def session_unavailable_handler(request: Request, exc: SessionUnavailable):
        logger.warning(f"Exam session unavailable: {exc}")
        return JSONResponse(status_code=409, content={"detail": str(exc), "redirect": "/exams"})

    @app.exception_handler(SubmissionFailed)
    async def submission_failed_handler(request: Request, exc: SubmissionFailed):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    app.include_router(router)

    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    return app
