from __future__ import annotations


class DomainError(Exception):
    """Base for errors that map onto a JSON API failure.

    ``code`` is a stable machine-readable identifier clients can switch on;
    ``category`` groups codes for the HTTP status mapping.
    """

    category = "error"
    http_status = 400

    def __init__(self, code: str, message: str = "", *, details: dict | None = None):
        self.code = (code or "ERROR").strip().upper()
        self.message = (message or self.code).strip()
        self.details = dict(details or {})
        super().__init__(f"{self.code}:{self.message}")

    def to_dict(self) -> dict:
        payload = {
            "code": self.code,
            "category": self.category,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    category = "validation"
    http_status = 400


class UnauthorizedError(DomainError):
    category = "unauthorized"
    http_status = 401


class ForbiddenError(DomainError):
    category = "forbidden"
    http_status = 403


class NotFoundError(DomainError):
    category = "not_found"
    http_status = 404


class InvalidTransitionError(DomainError):
    category = "invalid_transition"
    http_status = 409


class ConflictError(DomainError):
    category = "conflict"
    http_status = 409


class ExpiredError(DomainError):
    category = "expired"
    http_status = 410


class UpstreamError(DomainError):
    category = "upstream"
    http_status = 502
