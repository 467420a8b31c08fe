"""Error taxonomy shared by the store, the API and the draft controller."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from journeys.document import FieldError


class JourneyError(Exception):
    """Base class for every journey-level failure."""


class ValidationError(JourneyError):
    """A document failed validation; carries the full ordered error list."""

    def __init__(self, errors: list[FieldError], message: str = "Journey failed validation"):
        super().__init__(message)
        self.errors = list(errors)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": [e.to_dict() for e in self.errors]}


class NotFoundError(JourneyError):
    """The id does not resolve to a stored journey."""

    def __init__(self, journey_id: str, message: str = "Report not found"):
        super().__init__(message)
        self.journey_id = journey_id
        self.message = message


class TransportError(JourneyError):
    """The store or an external host could not be reached or answered badly."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(JourneyError):
    """Bad credentials or a missing/expired token."""
