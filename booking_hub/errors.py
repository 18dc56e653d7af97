"""
Booking Hub error taxonomy

Fatal kinds (AuthError, EntityListError) abort the pipeline.
PerWindowFetchError is recovered locally and reported as a failed source.
ValidationError means the collaborator rejected a mutation; the cache is left untouched.
"""

from typing import Optional


class BookingHubError(Exception):
    """Base class for all booking hub errors"""

    pass


class AuthError(BookingHubError):
    """Raised when the principal is not authenticated or not allowed"""

    pass


class TransportError(BookingHubError):
    """Raised when the upstream API cannot be reached or answers with a failure"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EntityListError(TransportError):
    """Raised when the entity list cannot be loaded - nothing to aggregate"""

    pass


class PerWindowFetchError(TransportError):
    """A single (entity, window) fetch failed or timed out"""

    def __init__(
        self,
        message: str,
        entity_id: str,
        window_label: str,
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message, status_code=status_code)
        self.entity_id = entity_id
        self.window_label = window_label
        self.timed_out = timed_out


class ValidationError(BookingHubError):
    """Raised when a mutation payload is rejected"""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class MergeInvariantViolation(BookingHubError):
    """Raised if a merged collection would contain a duplicated record id"""

    pass


class NotFoundError(BookingHubError):
    """Raised when a booking or entity is not in the session cache"""

    pass
