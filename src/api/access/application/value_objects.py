"""Application-layer value objects for the access-control bounded context.

These are the inputs and read-only results of the bulk, listing and copy
use cases.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import StrEnum

from access.domain.aggregates import AccessGrant, AccessRequest
from access.domain.value_objects import (
    AccessGrantId,
    AccessPair,
    AccessRequestItemId,
    UserId,
)


@dataclass(frozen=True)
class ProvisionedItem:
    """An item that bulk provisioning turned into a grant."""

    item_id: AccessRequestItemId
    access_grant_id: AccessGrantId


@dataclass(frozen=True)
class ProvisionFailure:
    """An item bulk provisioning could not process.

    Attributes:
        item_id: The item that failed
        reason: Human-readable failure message
        error: Exception class name, e.g. ``ConflictError`` or ``NotFoundError``
    """

    item_id: AccessRequestItemId
    reason: str
    error: str


@dataclass(frozen=True)
class BulkProvisionResult:
    """Outcome of provisioning a batch of items.

    Both lists keep the order of the submitted ids.
    """

    succeeded: list[ProvisionedItem] = field(default_factory=list)
    failed: list[ProvisionFailure] = field(default_factory=list)


@dataclass(frozen=True)
class GrantFailure:
    """A grant a bulk grant operation could not process."""

    grant_id: AccessGrantId
    reason: str
    error: str


@dataclass(frozen=True)
class BulkGrantResult:
    """Outcome of a bulk mark-for-removal or bulk removal."""

    succeeded: list[AccessGrant] = field(default_factory=list)
    failed: list[GrantFailure] = field(default_factory=list)


@dataclass(frozen=True)
class GrantRow:
    """One row of a bulk grant log: a user and the pair they already hold."""

    user_id: UserId
    pair: AccessPair


class RowOutcome(StrEnum):
    """What happened to one row of a bulk grant log."""

    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class LoggedRow:
    """Result for one row of a bulk grant log.

    Attributes:
        row_number: 1-based position in the submitted rows
        row: The submitted row
        outcome: Created, skipped as a duplicate, or failed
        grant: The new grant, or the existing one for a skipped row
        reason: Why the row was skipped or failed
        error: Exception class name for a failed row
    """

    row_number: int
    row: GrantRow
    outcome: RowOutcome
    grant: AccessGrant | None = None
    reason: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class BulkLogResult:
    """Outcome of logging a batch of externally granted access."""

    rows: list[LoggedRow] = field(default_factory=list)

    def _count(self, outcome: RowOutcome) -> int:
        return sum(1 for row in self.rows if row.outcome == outcome)

    @property
    def created(self) -> int:
        return self._count(RowOutcome.CREATED)

    @property
    def skipped(self) -> int:
        return self._count(RowOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(RowOutcome.FAILED)


@dataclass(frozen=True)
class GrantPage:
    """One page of the grant listing.

    ``page`` is 1-based; ``total`` counts every matching grant.
    """

    items: list[AccessGrant]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


class SkipReason(StrEnum):
    """Why a source grant was not copied."""

    ALREADY_GRANTED = "already_granted"
    UNKNOWN_INSTANCE = "unknown_instance"


@dataclass(frozen=True)
class SkippedPair:
    """A source grant left out of a copy."""

    pair: AccessPair
    reason: SkipReason


@dataclass(frozen=True)
class CopySummary:
    """Counts describing one copy run.

    Attributes:
        total: Source grants considered after system filtering
        created: Items placed on the new request
        skipped: Source grants left out
        auto_approved: Created items that started approved
    """

    total: int
    created: int
    skipped: int
    auto_approved: int


@dataclass(frozen=True)
class CopyResult:
    """Outcome of copying one user's grants to another.

    ``created`` is None when nothing was eligible; that is not an error.
    """

    created: AccessRequest | None
    skipped: list[SkippedPair]
    summary: CopySummary
