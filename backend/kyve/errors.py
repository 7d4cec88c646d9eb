from __future__ import annotations


class EscrowError(RuntimeError):
    """Base for failures surfaced to callers with a distinct status."""

    status_code = 500
    code = "EscrowError"

    def __init__(self, message: str = "", **extra):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra


class Unauthenticated(EscrowError):
    status_code = 401
    code = "Unauthorized"


class Forbidden(EscrowError):
    status_code = 403
    code = "Forbidden"


class NotFound(EscrowError):
    status_code = 404
    code = "NotFound"


class ValidationError(EscrowError):
    status_code = 400
    code = "ValidationError"


class SchemaValidationError(EscrowError):
    status_code = 422
    code = "SchemaValidationError"

    def __init__(self, issues: list[dict]):
        super().__init__("Validation error", issues=list(issues or []))
        self.issues = list(issues or [])


class Conflict(EscrowError):
    status_code = 409
    code = "Conflict"
