"""Application services for the access-control bounded context.

Application services orchestrate domain operations and manage transactions.
They sit between the presentation layer and the domain layer.
"""

from access.application.services.audit_recorder import AuditRecorder
from access.application.services.grant_copy_service import GrantCopyService
from access.application.services.grant_service import GrantService
from access.application.services.provisioning_service import (
    BulkProvisioningService,
    ProvisioningScopeFactory,
    ProvisioningService,
)
from access.application.services.request_service import RequestService

__all__ = [
    "AuditRecorder",
    "BulkProvisioningService",
    "GrantCopyService",
    "GrantService",
    "ProvisioningScopeFactory",
    "ProvisioningService",
    "RequestService",
]
