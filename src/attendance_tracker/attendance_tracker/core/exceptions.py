class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is malformed or out of range."""


class ConflictError(DomainError):
    """Raised when a transition's precondition does not hold.

    Examples: checking in while a session is open, checking out without one,
    or losing the check-in race to a concurrent request.
    """


class NotFoundError(DomainError):
    """Raised when a referenced event, break or day does not exist."""
