from __future__ import annotations


class LendingError(Exception):
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_payload(self) -> dict:
        payload = {"detail": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(LendingError):
    status_code = 400


class InvalidTransitionError(LendingError):
    status_code = 400


class ConflictError(LendingError):
    status_code = 409


class NotFoundError(LendingError):
    status_code = 404


class PermissionDeniedError(LendingError):
    status_code = 403
