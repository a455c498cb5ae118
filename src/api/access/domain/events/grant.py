"""Access grant domain events.

Domain events related to the grant lifecycle:
active -> to_remove -> removed, or active -> removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class AccessGrantCreated:
    """Event raised when the first grant for a (user, instance, tier) is created.

    Attributes:
        access_grant_id: The ULID of the new grant
        user_id: The grant holder
        system_instance_id: The instance the grant covers
        access_tier_id: The tier the grant covers
        actor_id: The user who provisioned or logged the grant
        occurred_at: When the event occurred (UTC)
    """

    access_grant_id: str
    user_id: str
    system_instance_id: str
    access_tier_id: str
    actor_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class AccessGrantActivated:
    """Event raised when a fresh grant supersedes a previously removed one.

    Removed grants are never re-activated in place; this event marks the
    new row and keeps a pointer to the grant it replaces.
    """

    access_grant_id: str
    user_id: str
    system_instance_id: str
    access_tier_id: str
    actor_id: str
    superseded_grant_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class AccessGrantMarkedForRemoval:
    """Event raised when an active grant is flagged for removal."""

    access_grant_id: str
    user_id: str
    system_instance_id: str
    access_tier_id: str
    actor_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class AccessGrantRemoved:
    """Event raised when a grant reaches its terminal removed state.

    Attributes:
        previous_status: Status before removal (active or to_remove)
    """

    access_grant_id: str
    user_id: str
    system_instance_id: str
    access_tier_id: str
    actor_id: str
    previous_status: str
    occurred_at: datetime
