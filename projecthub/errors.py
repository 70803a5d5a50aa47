"""
Domain error taxonomy and the Ok/Err result type returned by external adapters.

Adapters (planning, Trello, GitHub) never raise across their boundary; they hand
back ``Ok(value)`` or ``Err(error)`` and the caller decides what a failure means.
Services raise ``ServiceError`` subclasses, which ``main.py`` turns into JSON
responses carrying ``status_code``.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ServiceError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class UpstreamServiceError(ServiceError):
    """An external service was unreachable, timed out or answered garbage"""

    status_code = 502


class PersistenceError(ServiceError):
    status_code = 500


class ConflictError(PersistenceError):
    """Rows changed underneath the transaction (optimistic concurrency)"""

    status_code = 409


class RateLimitError(ServiceError):
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: ServiceError

    @property
    def message(self) -> str:
        return self.error.message


Result = Union[Ok[T], Err]
