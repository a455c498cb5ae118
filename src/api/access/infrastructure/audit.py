"""Access-specific serializer that turns domain events into audit entries.

Every domain event maps to exactly one audit entry. The event's identifying
fields become the entry's columns and whatever remains becomes the JSON
``details`` payload.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, get_args

from access.domain.audit import AuditEntry
from access.domain.events import (
    AccessGrantActivated,
    AccessGrantCreated,
    AccessGrantMarkedForRemoval,
    AccessGrantRemoved,
    AccessRequestSubmitted,
    DomainEvent,
    GrantsCopied,
    RequestItemApproved,
    RequestItemProvisioned,
    RequestItemRejected,
)
from access.domain.value_objects import (
    AuditAction,
    AuditEntryId,
    ResourceType,
    UserId,
)


@dataclass(frozen=True)
class _EntryShape:
    """Which event fields fill which audit columns."""

    action: AuditAction
    resource_type: ResourceType
    resource_field: str
    actor_field: str
    target_field: str


_SHAPES: dict[type, _EntryShape] = {
    AccessRequestSubmitted: _EntryShape(
        AuditAction.REQUEST_CREATED,
        ResourceType.ACCESS_REQUEST,
        "access_request_id",
        "requester_id",
        "target_user_id",
    ),
    GrantsCopied: _EntryShape(
        AuditAction.GRANTS_COPIED,
        ResourceType.ACCESS_REQUEST,
        "access_request_id",
        "requester_id",
        "target_user_id",
    ),
    RequestItemApproved: _EntryShape(
        AuditAction.ITEM_APPROVED,
        ResourceType.ACCESS_REQUEST_ITEM,
        "item_id",
        "actor_id",
        "target_user_id",
    ),
    RequestItemRejected: _EntryShape(
        AuditAction.ITEM_REJECTED,
        ResourceType.ACCESS_REQUEST_ITEM,
        "item_id",
        "actor_id",
        "target_user_id",
    ),
    RequestItemProvisioned: _EntryShape(
        AuditAction.ITEM_PROVISIONED,
        ResourceType.ACCESS_REQUEST_ITEM,
        "item_id",
        "actor_id",
        "target_user_id",
    ),
    AccessGrantCreated: _EntryShape(
        AuditAction.GRANT_CREATED,
        ResourceType.ACCESS_GRANT,
        "access_grant_id",
        "actor_id",
        "user_id",
    ),
    AccessGrantActivated: _EntryShape(
        AuditAction.GRANT_ACTIVATED,
        ResourceType.ACCESS_GRANT,
        "access_grant_id",
        "actor_id",
        "user_id",
    ),
    AccessGrantMarkedForRemoval: _EntryShape(
        AuditAction.GRANT_MARKED_FOR_REMOVAL,
        ResourceType.ACCESS_GRANT,
        "access_grant_id",
        "actor_id",
        "user_id",
    ),
    AccessGrantRemoved: _EntryShape(
        AuditAction.GRANT_REMOVED,
        ResourceType.ACCESS_GRANT,
        "access_grant_id",
        "actor_id",
        "user_id",
    ),
}

# Derive supported events from the DomainEvent type alias
_SUPPORTED_EVENTS: frozenset[str] = frozenset(
    cls.__name__ for cls in get_args(DomainEvent)
)

if _SUPPORTED_EVENTS != frozenset(cls.__name__ for cls in _SHAPES):
    raise RuntimeError("Every access domain event needs an audit entry shape")


class AuditEventSerializer:
    """Converts access domain events into audit entries.

    Handles every event in the DomainEvent type alias. Item decisions carry
    a ``decision`` detail of ``auto`` or ``manual``.
    """

    def supported_event_types(self) -> frozenset[str]:
        """Return the event type names this serializer handles."""
        return _SUPPORTED_EVENTS

    def to_entry(self, event: DomainEvent) -> AuditEntry:
        """Build the audit entry for one domain event.

        Args:
            event: The domain event to record

        Returns:
            A new AuditEntry stamped with the event's time

        Raises:
            ValueError: If the event type is not supported
        """
        shape = _SHAPES.get(type(event))
        if shape is None:
            raise ValueError(f"Unsupported event type: {type(event).__name__}")

        data = asdict(event)
        resource_id = data.pop(shape.resource_field)
        actor_id = data.pop(shape.actor_field)
        target_user_id = data.pop(shape.target_field)
        occurred_at: datetime = data.pop("occurred_at")
        reason = data.pop("reason", None)

        if "auto_approved" in data:
            data["decision"] = "auto" if data.pop("auto_approved") else "manual"
        elif shape.action == AuditAction.ITEM_REJECTED:
            data["decision"] = "manual"

        return AuditEntry(
            id=AuditEntryId.generate(),
            action=shape.action,
            actor_id=UserId(actor_id),
            target_user_id=UserId(target_user_id) if target_user_id else None,
            resource_type=shape.resource_type,
            resource_id=resource_id,
            details=self._details(data),
            reason=reason,
            created_at=occurred_at,
        )

    def to_entries(self, events: list[DomainEvent]) -> list[AuditEntry]:
        """Build audit entries for events, preserving their order."""
        return [self.to_entry(event) for event in events]

    def _details(self, data: dict[str, Any]) -> dict[str, Any]:
        """Drop empty values and make the rest JSON-serializable."""
        details: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, datetime):
                value = value.isoformat()
            details[key] = value
        return details
