"""Domain-Oriented Observability for the access application layer.

Probes for application service operations following Domain-Oriented Observability patterns.
"""

from access.application.observability.audit_recorder_probe import (
    AuditRecorderProbe,
    DefaultAuditRecorderProbe,
)
from access.application.observability.grant_copy_service_probe import (
    DefaultGrantCopyServiceProbe,
    GrantCopyServiceProbe,
)
from access.application.observability.grant_service_probe import (
    DefaultGrantServiceProbe,
    GrantServiceProbe,
)
from access.application.observability.provisioning_service_probe import (
    DefaultProvisioningServiceProbe,
    ProvisioningServiceProbe,
)
from access.application.observability.request_service_probe import (
    DefaultRequestServiceProbe,
    RequestServiceProbe,
)

__all__ = [
    "AuditRecorderProbe",
    "DefaultAuditRecorderProbe",
    "GrantCopyServiceProbe",
    "DefaultGrantCopyServiceProbe",
    "GrantServiceProbe",
    "DefaultGrantServiceProbe",
    "ProvisioningServiceProbe",
    "DefaultProvisioningServiceProbe",
    "RequestServiceProbe",
    "DefaultRequestServiceProbe",
]
