"""
Domain Error Taxonomy

Every failure raised by the chunk store, the embedding client and the RAG
services is one of the exceptions below. Each carries a stable machine code
and the HTTP status an outer API layer should answer with.

- NotFoundError     referenced document/chunk does not exist
- ForbiddenError    tenant mismatch
- ConflictError     duplicate chunk position (in-process or store-detected)
- ValidationError   malformed input
- UnavailableError  embedding dependency unreachable or misconfigured
"""

from __future__ import annotations


class CaseRagError(Exception):
    """Base class for all request-level failures of this package."""

    code: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(CaseRagError):
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class ForbiddenError(CaseRagError):
    code = "forbidden"
    status_code = 403


class ConflictError(CaseRagError):
    code = "conflict"
    status_code = 409


class ValidationError(CaseRagError):
    code = "validation_error"
    status_code = 422


class UnavailableError(CaseRagError):
    """
    A dependency is temporarily unavailable.

    Reported to clients as a distinct "try again later" condition so that an
    outage never reads as invalid input or corrupted data.
    """

    code = "service_temporarily_unavailable"
    status_code = 503
