"""Error taxonomy for the insight pipeline.

Every error carries the HTTP status the API layer answers with and a stable
``code`` clients can branch on (e.g. back off on ``rate_limited``, stop on
``quota_exhausted``).
"""

from __future__ import annotations


class InsightsError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(InsightsError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class UnauthorizedError(InsightsError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required"


class ForbiddenError(InsightsError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied"


class NotFoundError(InsightsError):
    status_code = 404
    code = "not_found"
    default_message = "Session not found"


class VersionConflictError(InsightsError):
    status_code = 409
    code = "version_conflict"
    default_message = "Insights were updated concurrently; discarding this run"


class PersistenceError(InsightsError):
    status_code = 500
    code = "persistence_error"
    default_message = "Failed to save insights to database"


class SynthesisError(InsightsError):
    status_code = 502
    code = "synthesis_error"
    default_message = "Failed to generate insights"


class SynthesisRateLimitError(SynthesisError):
    status_code = 429
    code = "rate_limited"
    default_message = "Rate limit exceeded. Please try again in a moment."


class SynthesisQuotaError(SynthesisError):
    status_code = 402
    code = "quota_exhausted"
    default_message = "Payment required. Please add credits to your workspace."


class SynthesisTimeoutError(SynthesisError):
    status_code = 504
    code = "synthesis_timeout"
    default_message = "Insight generation timed out"


class SynthesisParseError(SynthesisError):
    status_code = 502
    code = "synthesis_parse_error"
    default_message = "Failed to parse insights from AI response"
