"""Domain-Oriented Observability for access infrastructure.

Probes for repository operations following Domain-Oriented Observability patterns.
"""

from access.infrastructure.observability.repository_probe import (
    AccessGrantRepositoryProbe,
    AccessRequestRepositoryProbe,
    AuditLogRepositoryProbe,
    DefaultAccessGrantRepositoryProbe,
    DefaultAccessRequestRepositoryProbe,
    DefaultAuditLogRepositoryProbe,
)

__all__ = [
    "AccessGrantRepositoryProbe",
    "DefaultAccessGrantRepositoryProbe",
    "AccessRequestRepositoryProbe",
    "DefaultAccessRequestRepositoryProbe",
    "AuditLogRepositoryProbe",
    "DefaultAuditLogRepositoryProbe",
]
