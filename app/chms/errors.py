"""
Service-layer errors.

Façade functions raise these; the app factory turns them into JSON responses
and rolls the request session back.
"""
from __future__ import annotations


class ServiceError(RuntimeError):
    status_code = 400

    def __init__(self, message: str, *, errors: list[str] | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body: dict[str, object] = {"status": "error", "message": self.message, "code": self.status_code}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ServiceError):
    status_code = 400

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationError":
        return cls("; ".join(errors), errors=errors)


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness violations and deletes blocked by referencing rows."""

    status_code = 409


class ForbiddenError(ServiceError):
    status_code = 403


class RateLimitExceeded(ServiceError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry_after"] = self.retry_after
        return body


def raise_for_errors(errors: list[str]) -> None:
    if errors:
        raise ValidationError.from_errors(errors)
