"""
Request rejection taxonomy. Each error maps to a stable machine-readable code.
"""


class RiskError(Exception):
    """Base exception for rejected verification requests."""
    code = "error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)


class Unauthorized(RiskError):
    """Missing or wrong API key, and the calling origin is not allowed."""
    code = "unauthorized"
    status_code = 401


class RateLimited(RiskError):
    code = "rate_limited"
    status_code = 429


class InvalidPayload(RiskError):
    """Request body is not a structurally complete VerifyRequest."""
    code = "invalid_payload"
    status_code = 400


class UpstreamDeliveryFailed(RiskError):
    """Webhook POST failed. Never surfaced to a caller."""
    code = "upstream_delivery_failed"
    status_code = 502
