from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base for errors the UI layer reports back to the user."""


class ValidationError(DomainError):
    pass


class PreconditionError(DomainError):
    pass


class NotFoundError(DomainError):
    pass


class ConflictError(DomainError):
    """Conditional write lost a race. Safe to retry."""


class ExternalServiceError(DomainError):
    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class TranscriptionTimeoutError(ExternalServiceError):
    pass
