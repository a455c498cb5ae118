"""Value objects for the access-control domain.

Value objects are immutable descriptors that provide type safety and
domain semantics for identifiers and domain concepts.

Identifiers of records owned by this context (requests, items, grants,
audit entries) are ULIDs generated here. Catalog identifiers (users,
systems, instances, tiers) are opaque strings issued by the catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Self

from ulid import ULID


@dataclass(frozen=True)
class _UlidIdentifier:
    """Base for identifiers generated by this bounded context."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> Self:
        """Generate a new identifier using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> Self:
        """Create identifier from string value.

        Args:
            value: ULID string

        Returns:
            Identifier instance

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid {cls.__name__}: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class _CatalogIdentifier:
    """Base for identifiers issued by the external catalog."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value


class AccessRequestId(_UlidIdentifier):
    """Identifier for an AccessRequest aggregate."""


class AccessRequestItemId(_UlidIdentifier):
    """Identifier for an item within an AccessRequest."""


class AccessGrantId(_UlidIdentifier):
    """Identifier for an AccessGrant aggregate."""


class AuditEntryId(_UlidIdentifier):
    """Identifier for an audit log entry."""


class UserId(_CatalogIdentifier):
    """Identifier of a catalog user."""


class SystemId(_CatalogIdentifier):
    """Identifier of a catalog system."""


class SystemInstanceId(_CatalogIdentifier):
    """Identifier of a system instance (e.g. production, staging)."""


class AccessTierId(_CatalogIdentifier):
    """Identifier of an access tier defined by a system."""


class UserRole(StrEnum):
    """Organizational role of a catalog user."""

    MEMBER = "member"
    MANAGER = "manager"
    OWNER = "owner"
    ADMIN = "admin"


class ItemStatus(StrEnum):
    """Lifecycle states of a request item."""

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROVISIONED = "provisioned"

    @property
    def is_terminal(self) -> bool:
        """Rejected and provisioned items never transition again."""
        return self in (ItemStatus.REJECTED, ItemStatus.PROVISIONED)


class RequestStatus(StrEnum):
    """Derived status of an access request."""

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class GrantStatus(StrEnum):
    """Lifecycle states of an access grant."""

    ACTIVE = "active"
    TO_REMOVE = "to_remove"
    REMOVED = "removed"


class AuditAction(StrEnum):
    """Kinds of events recorded in the audit log."""

    REQUEST_CREATED = "request_created"
    ITEM_APPROVED = "item_approved"
    ITEM_REJECTED = "item_rejected"
    ITEM_PROVISIONED = "item_provisioned"
    GRANT_CREATED = "grant_created"
    GRANT_ACTIVATED = "grant_activated"
    GRANT_MARKED_FOR_REMOVAL = "grant_marked_for_removal"
    GRANT_REMOVED = "grant_removed"
    GRANTS_COPIED = "grants_copied"


class ResourceType(StrEnum):
    """Resource kinds referenced by audit entries."""

    ACCESS_REQUEST = "access_request"
    ACCESS_REQUEST_ITEM = "access_request_item"
    ACCESS_GRANT = "access_grant"


@dataclass(frozen=True)
class AccessPair:
    """A (system instance, access tier) combination.

    This is the unit of access: request items ask for one, grants hold one.
    """

    system_instance_id: SystemInstanceId
    access_tier_id: AccessTierId

    def __str__(self) -> str:
        return f"{self.system_instance_id.value}:{self.access_tier_id.value}"


@dataclass(frozen=True)
class CopyOrigin:
    """Provenance of a request created by copying another user's grants.

    Attributes:
        source_user_id: The user whose active grants were mirrored
        skipped_count: Pairs left out because the target already held them
    """

    source_user_id: UserId
    skipped_count: int = 0
