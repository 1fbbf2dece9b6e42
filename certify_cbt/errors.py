"""
errors.py — client-side error taxonomy

  ApiError            any failed call to the remote service
    Unauthorized      401: credentials are gone, force a new login
    SessionUnavailable start/resume rejected; fatal for the exam screen
    SubmissionFailed  submit rejected or unreachable; answers are kept
  SessionClosed       draft is read-only (submitted or time expired)
  UnknownQuestion     answer for a question id the session does not have
"""


class ApiError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(ApiError):
    def __init__(self, message: str = "Session expired. Please sign in again."):
        super().__init__(message, status_code=401)


class SessionUnavailable(ApiError):
    pass


class SubmissionFailed(ApiError):
    pass


class SessionClosed(RuntimeError):
    pass


class UnknownQuestion(ValueError):
    pass
