"""
api/deps.py — FastAPI dependencies: browser session, auth, API client, roles
"""

from typing import Any

from fastapi import Depends, HTTPException, Request, status

import api.session as session
from certify_cbt.models.user_model import User, UserRole
from certify_cbt.services.api_client import GradingApiClient
from certify_cbt.services.auth_state import AuthState
from certify_cbt.services.session_controller import ExamSessionController


def get_session_state(request: Request) -> dict[str, Any]:
    state = session.get_session(request.state.session_id)
    if state is None:
        # expired between the middleware and the handler
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired.")
    return state


def get_auth(state: dict[str, Any] = Depends(get_session_state)) -> AuthState:
    return state["auth"]


def get_api_client(state: dict[str, Any] = Depends(get_session_state)) -> GradingApiClient:
    # one client per browser session; closed when the session is torn down
    return state["client"]


def current_user(auth: AuthState = Depends(get_auth)) -> User:
    if not auth.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not signed in.")
    return auth.user


def require_role(*roles: UserRole):
    def current_user_has_role(
        user: User = Depends(current_user),
        auth: AuthState = Depends(get_auth),
    ) -> User:
        if not auth.has_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted",
            )
        return user
    return current_user_has_role


current_examiner = require_role(UserRole.EXAMINER, UserRole.ADMIN)


def get_controller(state: dict[str, Any] = Depends(get_session_state)) -> ExamSessionController:
    controller = state.get("controller")
    if controller is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No exam session.")
    return controller
