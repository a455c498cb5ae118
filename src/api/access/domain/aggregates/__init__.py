"""Domain aggregates for the access-control context.

Aggregates are the core business objects containing state and business logic.
They enforce invariants and business rules without depending on infrastructure.
"""

from access.domain.aggregates.access_grant import AccessGrant, can_transition_grant
from access.domain.aggregates.access_request import AccessRequest, AccessRequestItem

__all__ = [
    "AccessGrant",
    "AccessRequest",
    "AccessRequestItem",
    "can_transition_grant",
]
