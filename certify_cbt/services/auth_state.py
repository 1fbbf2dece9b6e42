"""
services/auth_state.py

Credentials and current user of one browser session.
init() on login, teardown() on logout or on any 401 from the service.
Routes receive it through a FastAPI dependency, never as a module global.
"""

import logging
from typing import Optional

from certify_cbt.models.user_model import AuthTokens, User, UserRole

logger = logging.getLogger(__name__)


class AuthState:
    def __init__(self):
        self._tokens: Optional[AuthTokens] = None

    def init(self, tokens: AuthTokens) -> None:
        self._tokens = tokens
        logger.info(f"Signed in: {tokens.user.email} ({tokens.user.role.value})")

    def teardown(self) -> None:
        if self._tokens is not None:
            logger.info(f"Signed out: {self._tokens.user.email}")
        self._tokens = None

    @property
    def access_token(self) -> Optional[str]:
        return self._tokens.access if self._tokens else None

    @property
    def user(self) -> Optional[User]:
        return self._tokens.user if self._tokens else None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def has_role(self, *roles: UserRole) -> bool:
        user = self.user
        if user is None:
            return False
        # staff accounts count as admins
        if UserRole.ADMIN in roles and user.is_staff:
            return True
        return user.role in roles
