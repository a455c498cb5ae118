"""Catalog lookups shared by the access application services.

Each helper turns a missing catalog entry into NotFoundError so services
can resolve references in one line.
"""

from __future__ import annotations

from access.domain.value_objects import AccessPair, UserId
from access.ports.catalog import (
    CatalogAccessTier,
    CatalogSystemInstance,
    CatalogUser,
    ICatalogStore,
)
from access.ports.exceptions import InvalidRequestError, NotFoundError


async def require_user(catalog: ICatalogStore, user_id: UserId) -> CatalogUser:
    """Fetch a user or raise NotFoundError."""
    user = await catalog.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id.value} not found")
    return user


async def resolve_pair(
    catalog: ICatalogStore, pair: AccessPair
) -> tuple[CatalogSystemInstance, CatalogAccessTier]:
    """Resolve an (instance, tier) pair against the catalog.

    Raises:
        NotFoundError: If the instance or tier does not exist
        InvalidRequestError: If the tier belongs to a different system
            than the instance
    """
    instance = await catalog.get_system_instance(pair.system_instance_id)
    if instance is None:
        raise NotFoundError(
            f"System instance {pair.system_instance_id.value} not found"
        )
    tier = await catalog.get_access_tier(pair.access_tier_id)
    if tier is None:
        raise NotFoundError(f"Access tier {pair.access_tier_id.value} not found")
    if tier.system_id != instance.system_id:
        raise InvalidRequestError(
            f"Access tier {tier.id.value} does not belong to the system of "
            f"instance {instance.id.value}"
        )
    return instance, tier
