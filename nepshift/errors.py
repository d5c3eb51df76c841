"""
Domain errors raised by marketplace operations.

Every operation raises one of these synchronously; the HTTP layer maps each
kind to a status code so callers can tell them apart.
"""


class NepshiftError(Exception):
    """Base class for all domain errors."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(NepshiftError):
    """Malformed or missing input."""

    kind = "validation"


class StateError(NepshiftError):
    """Operation is not valid for the entity's current state."""

    kind = "state"


class AuthorizationError(NepshiftError):
    """Caller lacks the rights for this operation."""

    kind = "authorization"


class ConflictError(NepshiftError):
    """A uniqueness constraint was violated."""

    kind = "conflict"


class PreconditionError(NepshiftError):
    """A specific required condition is not met."""

    kind = "precondition"


class NotFoundError(NepshiftError):
    kind = "not_found"
