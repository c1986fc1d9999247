"""
Service-layer errors.

Services raise these; the app factory maps them onto JSON responses with the
matching HTTP status.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str, *, details: dict | list | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.kind, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class BadRequestError(ServiceError):
    status_code = 400
    kind = "bad_request"


class UnauthorizedError(ServiceError):
    status_code = 401
    kind = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    kind = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    kind = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    kind = "conflict"
