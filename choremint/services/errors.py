"""Exceptions raised by the ledger, goal and evolution services.

Routes translate these into JSON error responses using ``status_code``.
"""

from typing import Optional


class LedgerServiceError(Exception):
    """Base exception for ledger service errors."""

    def __init__(self, message: str, status_code: int = 400, details: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(LedgerServiceError):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, 400, details)


class NotFoundError(LedgerServiceError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class ConflictError(LedgerServiceError):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, 409, details)


class LedgerWriteError(LedgerServiceError):
    """The ledger entry could not be persisted. Nothing was recorded."""

    def __init__(self, message: str):
        super().__init__(message, 503)


class AchievementError(LedgerServiceError):
    """The post-append sequence failed and was rolled back.

    The triggering ledger entry is already durable, so the append must not
    be retried. The sequence is completed by an explicit evaluate call, the
    next append or the reconcile job.
    """

    def __init__(self, message: str, entry_id: Optional[int] = None):
        details = {'entry_id': entry_id} if entry_id is not None else None
        super().__init__(message, 503, details)
