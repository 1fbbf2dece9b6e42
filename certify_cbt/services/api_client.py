"""
services/api_client.py

Client of the remote exam / grading REST service.
Public API (all blocking; callers in async code use asyncio.to_thread):
  - login(email, password) -> AuthTokens
  - list_exams / start_exam / get_session / submit_session
  - verify_payment(reference, exam_id)
  - get_result / exam_history / list_certificates / verify_certificate
  - download_certificate / download_result -> Download (opaque bytes)
  - pending_grading / grading_session / submit_grades

Every call carries the bearer token of the bound AuthState.
A 401 always raises Unauthorized; the caller tears the auth state down.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from config import API_BASE_URL, REQUEST_TIMEOUT
from certify_cbt.errors import ApiError, SessionUnavailable, SubmissionFailed, Unauthorized
from certify_cbt.models.user_model import AuthTokens

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


@dataclass
class Download:
    content: bytes
    filename: str
    content_type: str


def _error_message(response: requests.Response) -> str:
    """Pull ``detail`` / ``message`` / ``error`` out of an error body."""
    try:
        body = response.json()
    except ValueError:
        return f"Request failed ({response.status_code})"
    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"Request failed ({response.status_code})"


class GradingApiClient:
    def __init__(
        self,
        auth=None,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    # ── transport ─────────────────────────────────────────────────────────

    def _headers(self, json_body: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        token = self.auth.access_token if self.auth is not None else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _send(self, method: str, endpoint: str, payload: Any = None) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=self._headers(payload is not None),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise ApiError(f"Exam service unreachable: {e}") from e

        if response.status_code == 401:
            logger.warning(f"{method} {endpoint} -> 401, credentials rejected")
            raise Unauthorized()
        if not response.ok:
            message = _error_message(response)
            logger.error(f"API error {response.status_code} on {method} {endpoint}: {message}")
            raise ApiError(message, status_code=response.status_code)
        return response

    def _request(self, method: str, endpoint: str, payload: Any = None) -> Any:
        response = self._send(method, endpoint, payload)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {endpoint}") from e

    def _download(self, endpoint: str, fallback_name: str) -> Download:
        response = self._send("GET", endpoint)
        disposition = response.headers.get("Content-Disposition", "")
        match = _FILENAME_RE.search(disposition)
        return Download(
            content=response.content,
            filename=match.group(1) if match else fallback_name,
            content_type=response.headers.get("Content-Type", "application/octet-stream"),
        )

    # ── auth ──────────────────────────────────────────────────────────────

    def login(self, email: str, password: str) -> AuthTokens:
        data = self._request(
            "POST",
            "/auth/login/",
            {"username": email, "email": email, "password": password},
        )
        return AuthTokens.model_validate(data)

    # ── candidate ─────────────────────────────────────────────────────────

    def list_exams(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/exams/")

    def start_exam(self, exam_id: int) -> Dict[str, Any]:
        try:
            return self._request("POST", f"/exams/{exam_id}/start/")
        except Unauthorized:
            raise
        except ApiError as e:
            raise SessionUnavailable(str(e), status_code=e.status_code) from e

    def get_session(self, session_id: int) -> Dict[str, Any]:
        try:
            return self._request("GET", f"/exams/session/{session_id}/")
        except Unauthorized:
            raise
        except ApiError as e:
            raise SessionUnavailable(str(e), status_code=e.status_code) from e

    def submit_session(self, session_id: int, answers: List[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return self._request(
                "POST", f"/exams/session/{session_id}/submit/", {"answers": answers}
            )
        except Unauthorized:
            raise
        except ApiError as e:
            raise SubmissionFailed(str(e), status_code=e.status_code) from e

    def verify_payment(self, reference: str, exam_id: int) -> Dict[str, Any]:
        """Confirm a gateway payment reference for a priced exam."""
        return self._request(
            "POST", "/payments/verify/", {"reference": reference, "exam_id": exam_id}
        )

    def get_result(self, session_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/assessments/result/{session_id}/")

    def exam_history(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/assessments/history/")

    def list_certificates(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/certificates/")

    def verify_certificate(self, code: str) -> Dict[str, Any]:
        return self._request("GET", f"/certificates/verify/{code}/")

    def download_certificate(self, certificate_id: str) -> Download:
        return self._download(
            f"/certificates/download/{certificate_id}/", f"certificate-{certificate_id}.pdf"
        )

    def download_result(self, session_id: int) -> Download:
        return self._download(
            f"/assessments/result/{session_id}/download/", f"result-{session_id}.pdf"
        )

    # ── examiner ──────────────────────────────────────────────────────────

    def pending_grading(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/admin/grading/pending/")

    def grading_session(self, session_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/admin/grading/session/{session_id}/")

    def submit_grades(self, session_id: int, grades: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request(
            "POST", f"/admin/grading/submit/{session_id}/", {"grades": grades}
        )
