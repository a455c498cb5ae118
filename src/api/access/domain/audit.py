"""Audit log records for the access-control context.

Audit entries are append-only. Each one is derived from exactly one domain
event and written in the same transaction as the state change that raised it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from access.domain.value_objects import (
    AuditAction,
    AuditEntryId,
    ResourceType,
    UserId,
)


@dataclass(frozen=True)
class AuditEntry:
    """An immutable audit log row.

    Attributes:
        id: The ULID of the entry
        action: What happened
        actor_id: The user who caused it
        target_user_id: The user whose access was affected, when there is one
        resource_type: Kind of record the entry is about
        resource_id: Identifier of that record
        details: Free-form JSON-serializable payload; readers ignore unknown keys
        reason: Rejection reason or similar free text
        created_at: When the entry was written (UTC)
    """

    id: AuditEntryId
    action: AuditAction
    actor_id: UserId
    resource_type: ResourceType
    resource_id: str
    created_at: datetime
    target_user_id: UserId | None = None
    details: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Flatten the entry into the payload handed to the event sink."""
        return {
            "audit_entry_id": self.id.value,
            "action": self.action.value,
            "actor_id": self.actor_id.value,
            "target_user_id": (
                self.target_user_id.value if self.target_user_id else None
            ),
            "resource_type": self.resource_type.value,
            "resource_id": self.resource_id,
            "details": dict(self.details),
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AuditQuery:
    """Filters for reading the audit log. Unset filters match everything."""

    action: AuditAction | None = None
    actor_id: UserId | None = None
    target_user_id: UserId | None = None
    resource_type: ResourceType | None = None
    resource_id: str | None = None
    limit: int = 50
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit < 1 or self.limit > 500:
            raise ValueError("limit must be between 1 and 500")
        if self.offset < 0:
            raise ValueError("offset must not be negative")

    def matches(self, entry: AuditEntry) -> bool:
        """Check whether an entry satisfies every set filter."""
        return (
            (self.action is None or entry.action == self.action)
            and (self.actor_id is None or entry.actor_id == self.actor_id)
            and (
                self.target_user_id is None
                or entry.target_user_id == self.target_user_id
            )
            and (
                self.resource_type is None
                or entry.resource_type == self.resource_type
            )
            and (self.resource_id is None or entry.resource_id == self.resource_id)
        )
