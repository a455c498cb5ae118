"""Catalog port for the access-control bounded context.

Users, systems, instances and tiers are owned by the catalog and are read
only from this context. The read models below carry just the fields the
access lifecycle needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from access.domain.value_objects import (
    AccessTierId,
    SystemId,
    SystemInstanceId,
    UserId,
    UserRole,
)


@dataclass(frozen=True)
class CatalogUser:
    """A user as seen by the access lifecycle."""

    id: UserId
    name: str
    email: str
    role: UserRole
    manager_id: UserId | None = None


@dataclass(frozen=True)
class CatalogSystemInstance:
    """A deployment of a system, such as production or staging."""

    id: SystemInstanceId
    system_id: SystemId
    name: str


@dataclass(frozen=True)
class CatalogAccessTier:
    """An access level defined by a system.

    Attributes:
        self_approvable: Users may grant themselves this tier without sign-off
    """

    id: AccessTierId
    system_id: SystemId
    name: str
    self_approvable: bool = False


@runtime_checkable
class ICatalogStore(Protocol):
    """Read access to the catalog.

    Every lookup returns None for an unknown id instead of raising.
    """

    async def get_user(self, user_id: UserId) -> CatalogUser | None: ...

    async def get_system_instance(
        self, instance_id: SystemInstanceId
    ) -> CatalogSystemInstance | None: ...

    async def get_access_tier(self, tier_id: AccessTierId) -> CatalogAccessTier | None: ...

    async def get_manager_of(self, user_id: UserId) -> CatalogUser | None:
        """Return the direct manager of a user, or None at the top of the tree."""
        ...

    async def list_direct_reports(self, manager_id: UserId) -> list[CatalogUser]:
        """Return the users whose manager is ``manager_id``."""
        ...

    async def list_system_instances(
        self, system_id: SystemId
    ) -> list[CatalogSystemInstance]:
        """Return the instances of a system; empty for an unknown system."""
        ...
