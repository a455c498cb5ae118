"""Domain events for the access-control bounded context.

Domain events capture facts about things that have happened in the domain.
They are immutable value objects that carry all the information needed
to describe the occurrence of an event.

Every event is written to the audit log in the same transaction as the
state change that produced it, and published to the event sink after
the transaction commits.
"""

from access.domain.events.grant import (
    AccessGrantActivated,
    AccessGrantCreated,
    AccessGrantMarkedForRemoval,
    AccessGrantRemoved,
)
from access.domain.events.request import (
    AccessRequestSubmitted,
    GrantsCopied,
    RequestItemApproved,
    RequestItemProvisioned,
    RequestItemRejected,
)

# Type alias for all domain events in the access context
DomainEvent = (
    AccessRequestSubmitted
    | GrantsCopied
    | RequestItemApproved
    | RequestItemRejected
    | RequestItemProvisioned
    | AccessGrantCreated
    | AccessGrantActivated
    | AccessGrantMarkedForRemoval
    | AccessGrantRemoved
)

__all__ = [
    # Request events
    "AccessRequestSubmitted",
    "GrantsCopied",
    "RequestItemApproved",
    "RequestItemRejected",
    "RequestItemProvisioned",
    # Grant events
    "AccessGrantCreated",
    "AccessGrantActivated",
    "AccessGrantMarkedForRemoval",
    "AccessGrantRemoved",
    # Type alias
    "DomainEvent",
]
