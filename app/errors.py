# app/errors.py
from __future__ import annotations


class JudgingError(Exception):
    """Base for errors surfaced to callers as user-facing messages."""

    code = "judging_error"
    status = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict:
        payload = {"error": self.code, "detail": self.message}
        payload.update(self.extra)
        return payload


class ValidationError(JudgingError):
    code = "invalid_request"
    status = 400


class MissingResponsesError(ValidationError):
    code = "missing_responses"

    def __init__(self, missing_ids):
        missing_ids = list(missing_ids)
        super().__init__(
            "Please answer every criterion before submitting.",
            missing_ids=missing_ids,
        )
        self.missing_ids = missing_ids


class ConflictOfInterestError(JudgingError):
    code = "conflict_of_interest"
    status = 403


class ConsistencyError(JudgingError):
    code = "inconsistent_rubric"
    status = 422


class NotFoundError(JudgingError):
    code = "not_found"
    status = 404
