"""
Domain errors raised by the services and mapped to response envelopes by the app.
"""

from __future__ import annotations


class KeepsakeError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(KeepsakeError):
    status_code = 400


class AuthenticationFailed(KeepsakeError):
    status_code = 401


class NotFound(KeepsakeError):
    status_code = 404
