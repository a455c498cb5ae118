"""Repository protocols (ports) for the access-control bounded context.

Repository protocols define the interface for persisting and retrieving
aggregates. Implementations write the audit entries derived from an
aggregate's pending events in the same transaction as the aggregate itself.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from access.domain.aggregates import AccessGrant, AccessRequest
    from access.domain.audit import AuditEntry, AuditQuery
    from access.domain.grant_query import GrantQuery
    from access.domain.value_objects import (
        AccessGrantId,
        AccessPair,
        AccessRequestId,
        AccessRequestItemId,
        GrantStatus,
        ItemStatus,
        UserId,
    )


@runtime_checkable
class IAccessRequestRepository(Protocol):
    """Repository for AccessRequest aggregate persistence.

    Requests are loaded with all of their items, in submission order.
    """

    async def save(self, request: AccessRequest) -> list[AuditEntry]:
        """Persist a request and the audit entries for its pending events.

        New requests are inserted with all items. For existing requests only
        items whose status changed are written, each with a conditional
        update on the status it was loaded with.

        Returns:
            The audit entries written for the collected events

        Raises:
            ConcurrentModificationError: If an item changed since it was loaded
            AuditWriteError: If the audit entries could not be appended
        """
        ...

    async def get_by_id(self, request_id: AccessRequestId) -> AccessRequest | None:
        """Retrieve a request by ID, or None if absent."""
        ...

    async def get_by_item_id(
        self, item_id: AccessRequestItemId
    ) -> AccessRequest | None:
        """Retrieve the request that owns the given item, or None if absent."""
        ...

    async def list_pending_for_targets(
        self, target_user_ids: Sequence[UserId]
    ) -> list[AccessRequest]:
        """List requests with a requested item for any of the given targets.

        Returns:
            Requests ordered oldest first
        """
        ...

    async def list_for_user(self, user_id: UserId) -> list[AccessRequest]:
        """List requests where the user is requester or target, newest first."""
        ...

    async def list_with_item_status(self, status: ItemStatus) -> list[AccessRequest]:
        """List requests holding at least one item in ``status``, oldest first."""
        ...


@runtime_checkable
class IAccessGrantRepository(Protocol):
    """Repository for AccessGrant aggregate persistence."""

    async def save(self, grant: AccessGrant) -> list[AuditEntry]:
        """Persist a grant and the audit entries for its pending events.

        Returns:
            The audit entries written for the collected events

        Raises:
            ConflictError: If inserting would create a second non-removed
                grant for the same (user, instance, tier)
            ConcurrentModificationError: If the grant changed since it was loaded
            AuditWriteError: If the audit entries could not be appended
        """
        ...

    async def get_by_id(self, grant_id: AccessGrantId) -> AccessGrant | None:
        """Retrieve a grant by ID, or None if absent."""
        ...

    async def get_current(
        self, user_id: UserId, pair: AccessPair
    ) -> AccessGrant | None:
        """Retrieve the non-removed grant for a (user, instance, tier), if any."""
        ...

    async def get_latest_removed(
        self, user_id: UserId, pair: AccessPair
    ) -> AccessGrant | None:
        """Retrieve the most recently removed grant for a (user, instance, tier)."""
        ...

    async def list_for_user(
        self, user_id: UserId, status: GrantStatus | None = None
    ) -> list[AccessGrant]:
        """List a user's grants, optionally filtered by status, oldest first."""
        ...

    async def list_by_status(self, status: GrantStatus) -> list[AccessGrant]:
        """List every grant in ``status``, oldest first."""
        ...

    async def search(self, query: GrantQuery) -> tuple[list[AccessGrant], int]:
        """Return one page of grants matching ``query`` and the total count."""
        ...


@runtime_checkable
class IAuditLogRepository(Protocol):
    """Append-only store for audit entries."""

    async def append(self, entries: Sequence[AuditEntry]) -> None:
        """Append entries in the caller's transaction.

        Raises:
            AuditWriteError: If the entries could not be written
        """
        ...

    async def list_entries(self, query: AuditQuery) -> tuple[list[AuditEntry], int]:
        """Return one page of matching entries, newest first, and the total count."""
        ...
