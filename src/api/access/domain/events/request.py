"""Access request domain events.

Domain events related to the request/approval/provisioning lifecycle.
Each event is recorded by the AccessRequest aggregate and becomes exactly
one audit log entry when the aggregate is saved.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class AccessRequestSubmitted:
    """Event raised when a new access request is persisted.

    Attributes:
        access_request_id: The ULID of the request
        requester_id: The user who submitted the request
        target_user_id: The user who would receive the access
        item_count: Number of items in the submission
        auto_approved_count: Items approved by the auto-approval policy
        note: Free text supplied by the requester
        occurred_at: When the event occurred (UTC)
        copied_from_user_id: Source user when the request was created by a copy
    """

    access_request_id: str
    requester_id: str
    target_user_id: str
    item_count: int
    auto_approved_count: int
    note: str | None
    occurred_at: datetime
    copied_from_user_id: str | None = None


@dataclass(frozen=True)
class GrantsCopied:
    """Event raised when a request was created by copying another user's grants.

    Attributes:
        access_request_id: The ULID of the request holding the copied pairs
        requester_id: The user who invoked the copy
        source_user_id: The user whose grants were mirrored
        target_user_id: The user receiving the copied access
        copied_count: Number of pairs placed on the request
        skipped_count: Number of pairs the target already held
        occurred_at: When the event occurred (UTC)
    """

    access_request_id: str
    requester_id: str
    source_user_id: str
    target_user_id: str
    copied_count: int
    skipped_count: int
    occurred_at: datetime


@dataclass(frozen=True)
class RequestItemApproved:
    """Event raised when an item moves from requested to approved.

    ``auto_approved`` is True when the approval came from the auto-approval
    policy at submission or provisioning time rather than a manual decision.
    """

    access_request_id: str
    item_id: str
    actor_id: str
    target_user_id: str
    system_instance_id: str
    access_tier_id: str
    auto_approved: bool
    occurred_at: datetime


@dataclass(frozen=True)
class RequestItemRejected:
    """Event raised when an item is rejected.

    Attributes:
        reason: The rejection reason supplied by the decider
    """

    access_request_id: str
    item_id: str
    actor_id: str
    target_user_id: str
    system_instance_id: str
    access_tier_id: str
    reason: str
    occurred_at: datetime


@dataclass(frozen=True)
class RequestItemProvisioned:
    """Event raised when an approved item is turned into a live grant."""

    access_request_id: str
    item_id: str
    actor_id: str
    target_user_id: str
    system_instance_id: str
    access_tier_id: str
    access_grant_id: str
    occurred_at: datetime
