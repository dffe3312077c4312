# Overview: Error taxonomy for the distribution workflow engine.

"""
Every rejected operation raises one of these before anything is written
(or the caller rolls back), so the distribution stays exactly as it was.

status_code is the HTTP status the routes answer with.
"""

from __future__ import annotations


class DistributionError(ValueError):
    """Base class for domain errors raised by the distribution engine."""

    status_code = 400
    code = "distribution_error"

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DistributionError):
    """Malformed input or incomplete verification coverage."""

    status_code = 400
    code = "validation_error"


class NotFoundError(DistributionError):
    status_code = 404
    code = "not_found"


class PreconditionError(DistributionError):
    """Wrong current status for the requested operation, or department/location mismatch."""

    status_code = 409
    code = "precondition_failed"


class DiscrepancyConfirmationRequired(DistributionError):
    """
    Receiver verification flagged missing/damaged documents without override.

    The caller re-prompts and resubmits with force_complete_with_discrepancies.
    """

    status_code = 422
    code = "discrepancy_confirmation_required"

    def __init__(self, message: str, *, discrepancies: list[dict]):
        super().__init__(message, details={"discrepancies": discrepancies})
        self.discrepancies = discrepancies

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["requires_confirmation"] = True
        return body


class ConcurrencyConflict(DistributionError):
    """The distribution changed under us; refetch and retry."""

    status_code = 409
    code = "concurrency_conflict"

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry"] = True
        return body


class SequenceContention(DistributionError):
    """Internal: sequence counter was locked by a concurrent allocation. Retried, never surfaced."""

    status_code = 503
    code = "sequence_contention"
