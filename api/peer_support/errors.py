class DomainError(Exception):
    """Base class for failures raised by the session coordination core."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(DomainError):
    """Malformed input or a transition that is not allowed from the current state.

    Never partially applied: the store is untouched when this is raised.
    """


class NotFoundError(ValidationError):
    pass


class PreconditionFailed(DomainError):
    """Lost an optimistic-concurrency race or a business deadline has passed.

    Recoverable: the caller should re-fetch and show the updated state.
    """


class CollaboratorUnavailable(DomainError):
    """The store (or another blocking collaborator) failed with an I/O error."""
