"""Errors raised by the backend REST client."""

from typing import Optional


class ApiError(Exception):
    """Exception raised when a backend call fails.

    Covers transport failures, non-2xx responses and unreadable bodies.
    The session converts it into an error string on the owning slice of
    state; it never reaches the presentation layer.
    """

    def __init__(
        self,
        path: str,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        self.path = path
        self.status_code = status_code
        self.cause = cause
        super().__init__(f"[{path}] {message}")
