from __future__ import annotations


class AllocationError(Exception):
    """
    Base for every error the allocation engine surfaces to callers.
    status_code is the HTTP status the API layer renders it with.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AllocationError):
    """Malformed or missing input, or slots mixed across events. Raised before any write."""

    status_code = 400


class NotFoundError(AllocationError):
    """Unknown event, slot, participant or registration."""

    status_code = 404


class ConflictError(AllocationError):
    """Capacity exceeded, overlapping time ranges or a duplicate participant name. Retryable."""

    status_code = 409


class ExpiredError(AllocationError):
    """Invalid or expired manage token; the caller must request a fresh link."""

    status_code = 410
