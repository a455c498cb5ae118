"""Ports (interfaces) for the access-control bounded context.

Ports define the contracts for repositories, the catalog and the event
sink without specifying implementation details. This allows for dependency
inversion and makes the domain layer independent of infrastructure.
"""

from access.ports.exceptions import (
    AccessControlError,
    AuditWriteError,
    ConcurrentModificationError,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from access.ports.repositories import (
    IAccessGrantRepository,
    IAccessRequestRepository,
    IAuditLogRepository,
)

__all__ = [
    "IAccessGrantRepository",
    "IAccessRequestRepository",
    "IAuditLogRepository",
    "AccessControlError",
    "AuditWriteError",
    "ConcurrentModificationError",
    "ConflictError",
    "ForbiddenError",
    "InvalidRequestError",
    "NotFoundError",
]
