"""AccessGrant aggregate for the access-control context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from access.domain.events import (
    AccessGrantActivated,
    AccessGrantCreated,
    AccessGrantMarkedForRemoval,
    AccessGrantRemoved,
)
from access.domain.value_objects import (
    AccessGrantId,
    AccessPair,
    AccessTierId,
    GrantStatus,
    SystemInstanceId,
    UserId,
)
from access.ports.exceptions import ConflictError

if TYPE_CHECKING:
    from access.domain.events import DomainEvent

_ALLOWED_TRANSITIONS: dict[GrantStatus, frozenset[GrantStatus]] = {
    GrantStatus.ACTIVE: frozenset({GrantStatus.TO_REMOVE, GrantStatus.REMOVED}),
    GrantStatus.TO_REMOVE: frozenset({GrantStatus.REMOVED}),
    GrantStatus.REMOVED: frozenset(),
}


def can_transition_grant(current: GrantStatus, target: GrantStatus) -> bool:
    """Check whether a grant may move from ``current`` to ``target``."""
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass
class AccessGrant:
    """AccessGrant aggregate: a user's right to one instance at one tier.

    Business rules:
    - Grants start active
    - active -> to_remove -> removed, or active -> removed
    - removed is terminal; access is restored by a fresh grant that
      supersedes the removed one, never by re-activating it

    ``_persisted_status`` holds the status the grant had when it was loaded,
    which the repository uses as the expected pre-state of its conditional
    update. It is None for grants that have not been inserted yet.
    """

    id: AccessGrantId
    user_id: UserId
    system_instance_id: SystemInstanceId
    access_tier_id: AccessTierId
    status: GrantStatus
    granted_at: datetime
    granted_by: UserId | None = None
    removed_at: datetime | None = None
    _persisted_status: GrantStatus | None = field(
        default=None, repr=False, compare=False
    )
    _pending_events: list[DomainEvent] = field(
        default_factory=list, repr=False, compare=False
    )

    @classmethod
    def create(
        cls,
        user_id: UserId,
        pair: AccessPair,
        actor_id: UserId,
        supersedes: AccessGrant | None = None,
    ) -> AccessGrant:
        """Factory method for creating a new active grant.

        Args:
            user_id: The grant holder
            pair: The (instance, tier) being granted
            actor_id: The user provisioning or logging the grant
            supersedes: A removed grant for the same triple this one replaces

        Returns:
            A new AccessGrant with AccessGrantCreated or AccessGrantActivated recorded

        Raises:
            ConflictError: If ``supersedes`` is not a removed grant for the same triple
        """
        if supersedes is not None:
            if supersedes.status != GrantStatus.REMOVED:
                raise ConflictError(
                    f"Grant {supersedes.id.value} is {supersedes.status.value}; "
                    "only removed grants can be superseded"
                )
            if supersedes.user_id != user_id or supersedes.pair != pair:
                raise ConflictError(
                    f"Grant {supersedes.id.value} covers a different user or pair"
                )

        now = datetime.now(UTC)
        grant = cls(
            id=AccessGrantId.generate(),
            user_id=user_id,
            system_instance_id=pair.system_instance_id,
            access_tier_id=pair.access_tier_id,
            status=GrantStatus.ACTIVE,
            granted_at=now,
            granted_by=actor_id,
        )
        if supersedes is None:
            grant._pending_events.append(
                AccessGrantCreated(
                    access_grant_id=grant.id.value,
                    user_id=user_id.value,
                    system_instance_id=pair.system_instance_id.value,
                    access_tier_id=pair.access_tier_id.value,
                    actor_id=actor_id.value,
                    occurred_at=now,
                )
            )
        else:
            grant._pending_events.append(
                AccessGrantActivated(
                    access_grant_id=grant.id.value,
                    user_id=user_id.value,
                    system_instance_id=pair.system_instance_id.value,
                    access_tier_id=pair.access_tier_id.value,
                    actor_id=actor_id.value,
                    superseded_grant_id=supersedes.id.value,
                    occurred_at=now,
                )
            )
        return grant

    @property
    def pair(self) -> AccessPair:
        """The (instance, tier) this grant covers."""
        return AccessPair(
            system_instance_id=self.system_instance_id,
            access_tier_id=self.access_tier_id,
        )

    @property
    def persisted_status(self) -> GrantStatus | None:
        """Status as last read from or written to storage."""
        return self._persisted_status

    @property
    def is_new(self) -> bool:
        """True until the grant has been inserted."""
        return self._persisted_status is None

    def mark_for_removal(self, actor_id: UserId) -> None:
        """Flag an active grant for removal.

        Raises:
            ConflictError: If the grant is not active
        """
        self._transition(GrantStatus.TO_REMOVE)
        self._pending_events.append(
            AccessGrantMarkedForRemoval(
                access_grant_id=self.id.value,
                user_id=self.user_id.value,
                system_instance_id=self.system_instance_id.value,
                access_tier_id=self.access_tier_id.value,
                actor_id=actor_id.value,
                occurred_at=datetime.now(UTC),
            )
        )

    def remove(self, actor_id: UserId) -> None:
        """Remove the grant, from active or to_remove.

        Raises:
            ConflictError: If the grant is already removed
        """
        previous = self.status
        self._transition(GrantStatus.REMOVED)
        self.removed_at = datetime.now(UTC)
        self._pending_events.append(
            AccessGrantRemoved(
                access_grant_id=self.id.value,
                user_id=self.user_id.value,
                system_instance_id=self.system_instance_id.value,
                access_tier_id=self.access_tier_id.value,
                actor_id=actor_id.value,
                previous_status=previous.value,
                occurred_at=self.removed_at,
            )
        )

    def _transition(self, target: GrantStatus) -> None:
        if not can_transition_grant(self.status, target):
            raise ConflictError(
                f"Grant {self.id.value} cannot move from "
                f"'{self.status.value}' to '{target.value}'"
            )
        self.status = target

    def mark_persisted(self) -> None:
        """Record that the current status now matches storage."""
        self._persisted_status = self.status

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events.

        Returns:
            List of pending domain events
        """
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events
