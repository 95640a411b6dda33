from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ReviewValidationError(AppException):
    """
    A submission is missing something the transition requires
    (signature, date, ratings, accomplishments).

    Returned as a value by the engine; raised only at the HTTP edge.
    """
    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.field = field
        payload = dict(details or {})
        if field:
            payload.setdefault("field", field)
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=payload or None
        )

class InvalidTransitionError(AppException):
    def __init__(self, event: str, current_state: str):
        self.event = event
        self.current_state = current_state
        super().__init__(
            message=f"Cannot {event.replace('_', ' ')} while review is '{current_state}'",
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"event": event, "current_state": current_state}
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )

class TransportError(AppException):
    """Network or API failure talking to the review service. Never retried."""
    def __init__(self, message: str, status_code: int = 502, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="TRANSPORT_ERROR",
            details=details
        )

class SupersededRequestError(Exception):
    """A fetch was cancelled because a newer fetch for the same resource started."""
    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"Fetch of {resource} superseded by a newer request")

class RatingParseError(ValueError):
    """Legacy comment payload could not be decoded. Always recovered by the parser."""

class StaleDraftError(ValueError):
    """A stored draft could not be deserialized. Treated as no draft."""
