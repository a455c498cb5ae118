"""Filters for the access overview listing of grants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from access.domain.value_objects import (
    AccessTierId,
    GrantStatus,
    SystemInstanceId,
    UserId,
)

if TYPE_CHECKING:
    from access.domain.aggregates import AccessGrant

MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class GrantQuery:
    """One page of grants matching every set filter.

    ``system_instance_ids`` narrows to a set of instances; a system filter
    is expressed by resolving the system's instances first. An empty set
    matches nothing. Results are ordered by ``granted_at`` (newest first
    unless ``newest_first`` is False), then by id.
    """

    user_id: UserId | None = None
    system_instance_ids: frozenset[SystemInstanceId] | None = None
    access_tier_id: AccessTierId | None = None
    status: GrantStatus | None = None
    newest_first: bool = True
    limit: int = 50
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit < 1 or self.limit > MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if self.offset < 0:
            raise ValueError("offset must not be negative")

    def matches(self, grant: AccessGrant) -> bool:
        """Check whether a grant satisfies every set filter."""
        return (
            (self.user_id is None or grant.user_id == self.user_id)
            and (
                self.system_instance_ids is None
                or grant.system_instance_id in self.system_instance_ids
            )
            and (
                self.access_tier_id is None
                or grant.access_tier_id == self.access_tier_id
            )
            and (self.status is None or grant.status == self.status)
        )
