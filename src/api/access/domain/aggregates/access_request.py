"""AccessRequest aggregate for the access-control context."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from access.domain.events import (
    AccessRequestSubmitted,
    GrantsCopied,
    RequestItemApproved,
    RequestItemProvisioned,
    RequestItemRejected,
)
from access.domain.policy import aggregate_request_status, is_partially_approved
from access.domain.value_objects import (
    AccessGrantId,
    AccessPair,
    AccessRequestId,
    AccessRequestItemId,
    AccessTierId,
    CopyOrigin,
    ItemStatus,
    RequestStatus,
    SystemInstanceId,
    UserId,
)
from access.ports.exceptions import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
)

if TYPE_CHECKING:
    from access.domain.events import DomainEvent


@dataclass
class AccessRequestItem:
    """One (instance, tier) line within an access request.

    Items are owned by their AccessRequest and only change through it.
    ``rejected`` and ``provisioned`` are terminal.
    """

    id: AccessRequestItemId
    access_request_id: AccessRequestId
    position: int
    system_instance_id: SystemInstanceId
    access_tier_id: AccessTierId
    status: ItemStatus
    rejection_reason: str | None = None
    decided_by: UserId | None = None
    decided_at: datetime | None = None
    access_grant_id: AccessGrantId | None = None
    _persisted_status: ItemStatus | None = field(
        default=None, repr=False, compare=False
    )

    @property
    def pair(self) -> AccessPair:
        return AccessPair(
            system_instance_id=self.system_instance_id,
            access_tier_id=self.access_tier_id,
        )

    @property
    def persisted_status(self) -> ItemStatus | None:
        """Status as last read from or written to storage."""
        return self._persisted_status

    @property
    def is_dirty(self) -> bool:
        """True when the in-memory status differs from storage."""
        return self._persisted_status != self.status

    def mark_persisted(self) -> None:
        self._persisted_status = self.status


@dataclass
class AccessRequest:
    """AccessRequest aggregate: a bundle of items asked for one target user.

    The request's status is never stored. It is derived from the current
    item statuses every time it is read.

    Business rules:
    - A request holds at least one item
    - No (instance, tier) pair appears twice in one request
    - Items move requested -> approved -> provisioned, or requested -> rejected
    - A requested item may also be provisioned directly; it is approved
      first so the approval is still recorded

    Event collection:
    - Every item transition records exactly one domain event
    - Events can be collected via collect_events() and become audit entries
    """

    id: AccessRequestId
    requester_id: UserId
    target_user_id: UserId
    created_at: datetime
    note: str | None = None
    copied_from_user_id: UserId | None = None
    items: list[AccessRequestItem] = field(default_factory=list)
    _is_new: bool = field(default=False, repr=False, compare=False)
    _pending_events: list[DomainEvent] = field(
        default_factory=list, repr=False, compare=False
    )

    @classmethod
    def submit(
        cls,
        requester_id: UserId,
        target_user_id: UserId,
        pairs: Sequence[AccessPair],
        auto_approved: Collection[AccessPair] = (),
        note: str | None = None,
        copy_origin: CopyOrigin | None = None,
    ) -> AccessRequest:
        """Factory method for submitting a new access request.

        Items keep the order of ``pairs``. Items whose pair appears in
        ``auto_approved`` start approved, stamped with the requester as
        decider; all others start requested.

        Args:
            requester_id: The user submitting the request
            target_user_id: The user who would receive the access
            pairs: The (instance, tier) pairs being requested
            auto_approved: Pairs the auto-approval policy already approved
            note: Optional free text from the requester
            copy_origin: Set when the request mirrors another user's grants

        Returns:
            A new AccessRequest with its submission events recorded

        Raises:
            InvalidRequestError: If pairs is empty or contains duplicates
        """
        if not pairs:
            raise InvalidRequestError("An access request needs at least one item")

        seen: set[AccessPair] = set()
        for pair in pairs:
            if pair in seen:
                raise InvalidRequestError(
                    f"Duplicate item {pair} in access request"
                )
            seen.add(pair)

        now = datetime.now(UTC)
        request = cls(
            id=AccessRequestId.generate(),
            requester_id=requester_id,
            target_user_id=target_user_id,
            created_at=now,
            note=note,
            copied_from_user_id=(
                copy_origin.source_user_id if copy_origin is not None else None
            ),
            _is_new=True,
        )

        auto_approved_set = set(auto_approved)
        for position, pair in enumerate(pairs):
            is_auto = pair in auto_approved_set
            request.items.append(
                AccessRequestItem(
                    id=AccessRequestItemId.generate(),
                    access_request_id=request.id,
                    position=position,
                    system_instance_id=pair.system_instance_id,
                    access_tier_id=pair.access_tier_id,
                    status=ItemStatus.APPROVED if is_auto else ItemStatus.REQUESTED,
                    decided_by=requester_id if is_auto else None,
                    decided_at=now if is_auto else None,
                )
            )

        approved_items = [i for i in request.items if i.status == ItemStatus.APPROVED]
        request._pending_events.append(
            AccessRequestSubmitted(
                access_request_id=request.id.value,
                requester_id=requester_id.value,
                target_user_id=target_user_id.value,
                item_count=len(request.items),
                auto_approved_count=len(approved_items),
                note=note,
                occurred_at=now,
                copied_from_user_id=(
                    copy_origin.source_user_id.value
                    if copy_origin is not None
                    else None
                ),
            )
        )
        for item in approved_items:
            request._record_approval(item, requester_id, auto=True)
        if copy_origin is not None:
            request._pending_events.append(
                GrantsCopied(
                    access_request_id=request.id.value,
                    requester_id=requester_id.value,
                    source_user_id=copy_origin.source_user_id.value,
                    target_user_id=target_user_id.value,
                    copied_count=len(request.items),
                    skipped_count=copy_origin.skipped_count,
                    occurred_at=now,
                )
            )
        return request

    @property
    def status(self) -> RequestStatus:
        """Request status derived from the current item statuses."""
        return aggregate_request_status(item.status for item in self.items)

    @property
    def is_partially_approved(self) -> bool:
        return is_partially_approved(item.status for item in self.items)

    @property
    def is_new(self) -> bool:
        """True until the request has been inserted."""
        return self._is_new

    @property
    def pending_items(self) -> list[AccessRequestItem]:
        """Items still awaiting a decision, in submission order."""
        return [i for i in self.items if i.status == ItemStatus.REQUESTED]

    @property
    def dirty_items(self) -> list[AccessRequestItem]:
        """Items whose status changed since they were loaded."""
        return [i for i in self.items if i.is_dirty]

    def get_item(self, item_id: AccessRequestItemId) -> AccessRequestItem:
        """Return the item with the given id.

        Raises:
            NotFoundError: If the item does not belong to this request
        """
        for item in self.items:
            if item.id == item_id:
                return item
        raise NotFoundError(
            f"Item {item_id.value} not found in request {self.id.value}"
        )

    def approve_item(
        self,
        item_id: AccessRequestItemId,
        actor_id: UserId,
        auto: bool = False,
    ) -> AccessRequestItem:
        """Approve a requested item.

        Args:
            item_id: The item to approve
            actor_id: The user making the decision
            auto: True when the approval comes from the auto-approval policy

        Raises:
            NotFoundError: If the item is not part of this request
            ConflictError: If the item is not in requested state
        """
        item = self.get_item(item_id)
        self._require_status(item, ItemStatus.REQUESTED, "approved")

        item.status = ItemStatus.APPROVED
        item.decided_by = actor_id
        item.decided_at = datetime.now(UTC)
        self._record_approval(item, actor_id, auto=auto)
        return item

    def reject_item(
        self,
        item_id: AccessRequestItemId,
        actor_id: UserId,
        reason: str,
    ) -> AccessRequestItem:
        """Reject a requested item.

        Raises:
            NotFoundError: If the item is not part of this request
            InvalidRequestError: If the reason is blank
            ConflictError: If the item is not in requested state
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequestError("A rejection reason is required")

        item = self.get_item(item_id)
        self._require_status(item, ItemStatus.REQUESTED, "rejected")

        item.status = ItemStatus.REJECTED
        item.rejection_reason = reason
        item.decided_by = actor_id
        item.decided_at = datetime.now(UTC)
        self._pending_events.append(
            RequestItemRejected(
                access_request_id=self.id.value,
                item_id=item.id.value,
                actor_id=actor_id.value,
                target_user_id=self.target_user_id.value,
                system_instance_id=item.system_instance_id.value,
                access_tier_id=item.access_tier_id.value,
                reason=reason,
                occurred_at=item.decided_at,
            )
        )
        return item

    def mark_item_provisioned(
        self,
        item_id: AccessRequestItemId,
        actor_id: UserId,
        grant_id: AccessGrantId,
    ) -> AccessRequestItem:
        """Link an approved item to the grant that fulfils it.

        Raises:
            NotFoundError: If the item is not part of this request
            ConflictError: If the item is not in approved state
        """
        item = self.get_item(item_id)
        self._require_status(item, ItemStatus.APPROVED, "provisioned")

        item.status = ItemStatus.PROVISIONED
        item.access_grant_id = grant_id
        self._pending_events.append(
            RequestItemProvisioned(
                access_request_id=self.id.value,
                item_id=item.id.value,
                actor_id=actor_id.value,
                target_user_id=self.target_user_id.value,
                system_instance_id=item.system_instance_id.value,
                access_tier_id=item.access_tier_id.value,
                access_grant_id=grant_id.value,
                occurred_at=datetime.now(UTC),
            )
        )
        return item

    def mark_persisted(self) -> None:
        """Record that the request and all items now match storage."""
        self._is_new = False
        for item in self.items:
            item.mark_persisted()

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events.

        Returns:
            List of pending domain events
        """
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events

    def _require_status(
        self, item: AccessRequestItem, expected: ItemStatus, target: str
    ) -> None:
        if item.status != expected:
            raise ConflictError(
                f"Item {item.id.value} is {item.status.value} and cannot be {target}"
            )

    def _record_approval(
        self, item: AccessRequestItem, actor_id: UserId, auto: bool
    ) -> None:
        self._pending_events.append(
            RequestItemApproved(
                access_request_id=self.id.value,
                item_id=item.id.value,
                actor_id=actor_id.value,
                target_user_id=self.target_user_id.value,
                system_instance_id=item.system_instance_id.value,
                access_tier_id=item.access_tier_id.value,
                auto_approved=auto,
                occurred_at=item.decided_at or datetime.now(UTC),
            )
        )
