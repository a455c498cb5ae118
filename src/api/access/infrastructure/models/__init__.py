"""SQLAlchemy ORM models for the access-control bounded context.

These models map to database tables and are used by repository implementations.
"""

from access.infrastructure.models.access_grant import AccessGrantModel
from access.infrastructure.models.access_request import (
    AccessRequestItemModel,
    AccessRequestModel,
)
from access.infrastructure.models.audit_log import AuditLogModel

__all__ = [
    "AccessGrantModel",
    "AccessRequestItemModel",
    "AccessRequestModel",
    "AuditLogModel",
]
