"""Domain exceptions for the access-control bounded context.

Four kinds of failure are distinguished. None of them is retried inside
the core; callers translate them to their own surface (HTTP status,
CLI exit code, ...).
"""


class AccessControlError(Exception):
    """Base class for every error raised by the access-control core."""

    pass


class NotFoundError(AccessControlError):
    """Raised when a referenced user, catalog entry, request, item or grant is absent."""

    pass


class InvalidRequestError(AccessControlError):
    """Raised for malformed input.

    Examples: empty item list, duplicate pairs in one submission, a bulk
    call over the size limit, copying a user onto themselves, or a missing
    rejection reason.
    """

    pass


class ForbiddenError(AccessControlError):
    """Raised when the actor lacks the role or hierarchy position for an action."""

    pass


class ConflictError(AccessControlError):
    """Raised when a state-transition precondition does not hold.

    Re-approving an approved item, provisioning a rejected item and
    removing a removed grant all raise this error.
    """

    pass


class ConcurrentModificationError(ConflictError):
    """Raised when the row changed between read and conditional update.

    The update only applies while the stored status still equals the
    status the aggregate was loaded with.
    """

    pass


class AuditWriteError(ConflictError):
    """Raised when an audit entry could not be appended.

    The enclosing transaction is rolled back so no state change survives
    without its audit entry.
    """

    pass
