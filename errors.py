"""
Shopping Assistant — Error Taxonomy
errors.py

Every error carries a stable ``code`` and the HTTP status the API layer
maps it to.
"""
from __future__ import annotations
from typing import Optional


class ShoppingAssistantError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, details: Optional[list[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ShoppingAssistantError):
    """Malformed request: bad strategy, missing fields, out-of-range values."""
    code = "INVALID_INPUT"
    http_status = 400


class NotFoundError(ShoppingAssistantError):
    code = "NOT_FOUND"
    http_status = 404


class ResolutionFailure(ShoppingAssistantError):
    """A product or its review aggregate could not be resolved."""
    code = "RESOLUTION_FAILED"
    http_status = 404

    def __init__(self, product_id: str, reason: str):
        super().__init__(f"Could not resolve product {product_id}: {reason}")
        self.product_id = product_id
        self.reason = reason


class CandidateSourceFailure(ShoppingAssistantError):
    """Upstream discovery call failed or returned unparseable data."""
    code = "CANDIDATE_SOURCE_FAILED"
    http_status = 502


class PersistenceFailure(ShoppingAssistantError):
    code = "PERSISTENCE_FAILED"
    http_status = 500
