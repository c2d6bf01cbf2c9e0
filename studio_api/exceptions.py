"""Domain errors raised by services and translated to JSON by the routers."""

from typing import Any, Optional


class StudioError(Exception):
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailed(StudioError):
    status_code = 400


class PermissionDenied(StudioError):
    status_code = 403


class NotFound(StudioError):
    status_code = 404


class Conflict(StudioError):
    status_code = 409


class CapacityError(ValidationFailed):
    """Raised when a class or event has no seats left."""


class PaymentProviderError(StudioError):
    status_code = 502
